"""Configuration for the TestBox executor."""

from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field, PositiveFloat


class TestBoxConfig(BaseModel):
    """Configuration for the TestBox executor."""

    __test__ = False

    host: str = "localhost"
    scheme: Literal["http", "https"] = "http"
    runner_path: str = "/wheels/testbox"
    sort: str = "directory asc"
    # Sent to the runner so it does not give up on long suites
    runner_timeout: int = Field(default=1800, gt=0)
    # Client-side ceiling for the whole request
    request_timeout: PositiveFloat = 1800
    port_overrides: Mapping[str, int] = Field(default_factory=dict)
    default_port: int = 8080
