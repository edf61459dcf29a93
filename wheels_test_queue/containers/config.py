"""Configuration for the Docker API client."""

from pydantic import BaseModel, Field


class DockerConfig(BaseModel):
    """Configuration for the Docker API client."""

    # unix:///path/to/docker.sock or an http(s) URL of a Docker API proxy
    url: str = "unix:///var/run/docker.sock"
    cache_ttl: float = Field(default=5.0, ge=0)
    request_timeout: float = Field(default=10.0, gt=0)
