"""Fixtures for module tests using WireMock testcontainers."""

from collections.abc import Generator

import docker
import pytest
from docker.errors import DockerException
from testcontainers.core import testcontainers_config
from wiremock.constants import Config
from wiremock.testing.testcontainer import WireMockContainer

from wheels_test_queue.executors.testbox import TestBoxConfig
from wheels_test_queue.registry import default_registry


@pytest.fixture(scope="session", autouse=True)
def _disable_ryuk() -> None:
    """Disable the extra cleanup instance, we use contexts to clean containers."""
    testcontainers_config.ryuk_disabled = True


@pytest.fixture(scope="session")
def wiremock_server() -> Generator[WireMockContainer, None, None]:
    """Start WireMock container standing in for the engines' test runner."""
    try:
        docker.from_env().ping()
    except DockerException:
        pytest.skip("Docker is not available")

    with WireMockContainer(secure=False) as wm:
        Config.base_url = wm.get_url("__admin")
        yield wm
        print(wm.get_logs())


@pytest.fixture(scope="session")
def runner_config(wiremock_server: WireMockContainer) -> TestBoxConfig:
    """TestBox config pointing every engine at WireMock."""
    host = wiremock_server.get_container_host_ip()
    port = int(wiremock_server.get_exposed_port(8080))
    return TestBoxConfig(
        host=host,
        runner_timeout=60,
        request_timeout=30,
        port_overrides={engine_id: port for engine_id in default_registry().engines},
    )
