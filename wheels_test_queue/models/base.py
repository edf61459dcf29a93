"""Base model configuration for registry and container data."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Immutable model that rejects unknown fields.

    Input values are left out of validation errors so connection passwords
    read from registry files never end up in logs.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
        hide_input_in_errors=True,
    )
