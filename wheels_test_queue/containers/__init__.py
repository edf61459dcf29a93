"""Docker container status module."""

from wheels_test_queue.containers.client import DockerClient
from wheels_test_queue.containers.config import DockerConfig
from wheels_test_queue.containers.models import (
    Container,
    ContainerHealth,
    ContainerStatus,
)

__all__ = [
    "Container",
    "ContainerHealth",
    "ContainerStatus",
    "DockerClient",
    "DockerConfig",
]
