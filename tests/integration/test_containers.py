"""Integration tests for the Docker API client."""

import struct
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from aioresponses import aioresponses as aioresponses_cls
from yarl import URL

from wheels_test_queue.containers import (
    ContainerHealth,
    ContainerStatus,
    DockerClient,
    DockerConfig,
)
from wheels_test_queue.containers.client import demultiplex_logs
from wheels_test_queue.errors import ContainerApiError

DOCKER_URL = "http://docker.test"
CONTAINERS_URL = f"{DOCKER_URL}/containers/json?all=true"


def api_container(
    *,
    name: str,
    image: str,
    state: str = "running",
    status: str = "Up 2 hours (healthy)",
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Create a container entry of the list containers API."""
    return {
        "Id": f"{name}0123456789abcdef",
        "Names": [f"/{name}"],
        "Image": image,
        "State": state,
        "Status": status,
        "Labels": labels or {},
        "Ports": [{"PrivatePort": 8888, "PublicPort": 60006, "Type": "tcp"}],
        "Created": 4070908800,
    }


CONTAINERS = [
    api_container(name="cfwheels-lucee6-1", image="lucee/lucee:6"),
    api_container(
        name="cfwheels-adobe2023-1",
        image="adobecoldfusion/coldfusion2023",
        state="exited",
        status="Exited (0) 3 minutes ago",
    ),
    api_container(name="cfwheels-postgres-1", image="postgres:13"),
    api_container(
        name="cfwheels-db-1",
        image="mcr.microsoft.com/mssql/server:2019-latest",
        labels={"com.github.cfwheels.type": "database"},
    ),
    api_container(name="registry", image="registry:2"),
]


@pytest.fixture
def config() -> DockerConfig:
    """Create test configuration."""
    return DockerConfig(url=DOCKER_URL, cache_ttl=60)


@pytest.fixture
async def docker(
    config: DockerConfig, aioresponses: aioresponses_cls
) -> AsyncGenerator[DockerClient, None]:
    """Create client with managed session."""
    async with DockerClient.from_config(config) as impl:
        yield impl


class TestListContainers:
    """Tests for list_containers."""

    async def test_classifies_containers(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Maps API entries to containers with kind, status and health."""
        aioresponses.get(CONTAINERS_URL, status=200, payload=CONTAINERS)

        containers = await docker.list_containers()

        by_name = {c.name: c for c in containers}
        lucee = by_name["cfwheels-lucee6-1"]
        assert lucee.kind == "engine"
        assert lucee.status is ContainerStatus.RUNNING
        assert lucee.health is ContainerHealth.HEALTHY
        assert lucee.uptime == "2 hours"
        assert lucee.ports == {"8888": "60006"}
        assert by_name["cfwheels-adobe2023-1"].status is ContainerStatus.STOPPED
        assert by_name["cfwheels-adobe2023-1"].uptime is None
        assert by_name["cfwheels-postgres-1"].kind == "database"
        assert by_name["cfwheels-db-1"].kind == "database"
        assert by_name["registry"].kind == "other"

    async def test_serves_from_cache_within_ttl(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Queries the API once while the cache is fresh."""
        aioresponses.get(CONTAINERS_URL, status=200, payload=CONTAINERS)

        first = await docker.list_containers()
        second = await docker.list_containers()

        assert first is second
        assert len(aioresponses.requests[("GET", URL(CONTAINERS_URL))]) == 1

    async def test_falls_back_to_cache_on_failure(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Returns the cached list when a forced refresh fails."""
        aioresponses.get(CONTAINERS_URL, status=200, payload=CONTAINERS)
        aioresponses.get(CONTAINERS_URL, status=500, body="daemon error")

        cached = await docker.list_containers()
        refreshed = await docker.list_containers(force_refresh=True)

        assert refreshed is cached

    async def test_raises_without_cache(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Raises when the API fails and nothing is cached."""
        aioresponses.get(CONTAINERS_URL, status=500, body="daemon error")

        with pytest.raises(ContainerApiError, match="500"):
            await docker.list_containers()


class TestFindContainers:
    """Tests for engine and database lookups."""

    async def test_finds_engine(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Finds an engine container by engine id."""
        aioresponses.get(CONTAINERS_URL, status=200, payload=CONTAINERS)

        container = await docker.find_engine_container("lucee6")

        assert container is not None
        assert container.name == "cfwheels-lucee6-1"

    async def test_finds_postgres_for_postgresql(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Matches the postgresql database to a postgres container."""
        aioresponses.get(CONTAINERS_URL, status=200, payload=CONTAINERS)

        container = await docker.find_database_container("postgresql")

        assert container is not None
        assert container.name == "cfwheels-postgres-1"

    async def test_finds_sqlserver_by_mssql_image(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Matches the sqlserver database to an mssql image."""
        aioresponses.get(CONTAINERS_URL, status=200, payload=CONTAINERS)

        container = await docker.find_database_container("sqlserver")

        assert container is not None
        assert container.name == "cfwheels-db-1"

    async def test_h2_is_virtual(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Returns a running virtual container for embedded H2."""
        container = await docker.find_database_container("h2")

        assert container is not None
        assert container.is_running
        assert len(aioresponses.requests) == 0

    async def test_refreshes_before_giving_up(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Refreshes the cache once when no container matches."""
        aioresponses.get(CONTAINERS_URL, status=200, payload=CONTAINERS)
        aioresponses.get(
            CONTAINERS_URL,
            status=200,
            payload=[*CONTAINERS, api_container(name="oracle-1", image="oracle")],
        )

        container = await docker.find_database_container("oracle")

        assert container is not None
        assert container.name == "oracle-1"


class TestContainerActions:
    """Tests for stop, restart and logs."""

    @pytest.mark.parametrize("status", [204, 304])
    async def test_stop_container(
        self, docker: DockerClient, aioresponses: aioresponses_cls, status: int
    ) -> None:
        """Stops a container, accepting an already stopped one."""
        aioresponses.post(f"{DOCKER_URL}/containers/abc/stop", status=status)

        await docker.stop_container("abc")

    async def test_restart_failure_raises(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Raises when the daemon refuses the restart."""
        aioresponses.post(
            f"{DOCKER_URL}/containers/abc/restart", status=404, body="no such container"
        )

        with pytest.raises(ContainerApiError, match="404"):
            await docker.restart_container("abc")

    async def test_container_logs(
        self, docker: DockerClient, aioresponses: aioresponses_cls
    ) -> None:
        """Returns demultiplexed log output."""
        frame = b"Lucee started\n"
        body = struct.pack(">BxxxL", 1, len(frame)) + frame
        aioresponses.get(
            f"{DOCKER_URL}/containers/abc/logs?stdout=true&stderr=true&tail=10",
            status=200,
            body=body,
        )

        assert await docker.container_logs("abc", tail=10) == "Lucee started\n"


async def test_ping(aioresponses: aioresponses_cls, config: DockerConfig) -> None:
    """Reports whether the daemon answers."""
    aioresponses.get(f"{DOCKER_URL}/_ping", status=200, body="OK")

    async with DockerClient.from_config(config) as docker:
        assert await docker.ping() is True
        assert await docker.ping() is False


def test_demultiplex_logs_tty_output() -> None:
    """Returns raw text for TTY containers without framing."""
    assert demultiplex_logs(b"plain output\n") == "plain output\n"
