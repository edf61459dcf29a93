"""Models for Docker containers."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from wheels_test_queue.models.base import Model

ContainerKind = Literal["engine", "database", "other"]


class ContainerStatus(StrEnum):
    """Lifecycle state of a container."""

    RUNNING = "running"
    STOPPED = "stopped"
    STARTING = "starting"
    STOPPING = "stopping"
    UNKNOWN = "unknown"


class ContainerHealth(StrEnum):
    """Health check state of a container."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STARTING = "starting"


class PortBinding(BaseModel):
    """A port entry of the Docker list containers API."""

    model_config = ConfigDict(extra="ignore")

    private_port: int | None = Field(default=None, alias="PrivatePort")
    public_port: int | None = Field(default=None, alias="PublicPort")


class ApiContainer(BaseModel):
    """A container as returned by ``GET /containers/json``."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(alias="Id")
    names: Sequence[str] = Field(default_factory=list, alias="Names")
    image: str = Field(default="", alias="Image")
    state: str = Field(default="", alias="State")
    status: str = Field(default="", alias="Status")
    labels: Mapping[str, str] | None = Field(default=None, alias="Labels")
    ports: Sequence[PortBinding] | None = Field(default=None, alias="Ports")
    created: int = Field(default=0, alias="Created")
    health: Mapping[str, Any] | None = Field(default=None, alias="Health")


class Container(Model):
    """A container relevant to the test matrix."""

    id: str
    name: str
    kind: ContainerKind
    image: str
    status: ContainerStatus
    health: ContainerHealth | None = None
    ports: Mapping[str, str] = Field(default_factory=dict)
    created: datetime
    uptime: str | None = None
    labels: Mapping[str, str] = Field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        """Whether the container is up."""
        return self.status is ContainerStatus.RUNNING
