"""Docker API client used for container status and pre-flight checks."""

import logging
import re
import struct
import time
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

import aiohttp
from pydantic import ValidationError

from wheels_test_queue.containers.config import DockerConfig
from wheels_test_queue.containers.models import (
    ApiContainer,
    Container,
    ContainerHealth,
    ContainerKind,
    ContainerStatus,
)
from wheels_test_queue.errors import ContainerApiError

log = logging.getLogger(__name__)

TYPE_LABEL = "com.github.cfwheels.type"
ENGINE_HINTS = ("lucee", "adobe", "coldfusion")
DATABASE_HINTS = ("mysql", "postgres", "sqlserver", "mssql", "h2", "oracle")

STATE_TO_STATUS: Mapping[str, ContainerStatus] = {
    "running": ContainerStatus.RUNNING,
    "exited": ContainerStatus.STOPPED,
    "dead": ContainerStatus.STOPPED,
    "created": ContainerStatus.STARTING,
    "restarting": ContainerStatus.STARTING,
    "removing": ContainerStatus.STOPPING,
    "paused": ContainerStatus.STOPPING,
}

# Name fragments identifying a database container, when they differ from the id
DATABASE_MATCH: Mapping[str, Sequence[str]] = {
    "postgresql": ("postgres",),
    "sqlserver": ("sqlserver", "mssql"),
}

UPTIME_PATTERN = re.compile(r"Up (.*?)( \(|$)")


def container_kind(raw: ApiContainer, name: str) -> ContainerKind:
    """Classify a container from its label, then its image, then its name."""
    label = (raw.labels or {}).get(TYPE_LABEL)
    if label == "engine":
        return "engine"
    if label == "database":
        return "database"

    for candidate in (raw.image.lower(), name.lower()):
        if any(hint in candidate for hint in ENGINE_HINTS):
            return "engine"
        if any(hint in candidate for hint in DATABASE_HINTS):
            return "database"
    return "other"


def container_health(raw: ApiContainer) -> ContainerHealth | None:
    """Read health from the Health block or the status string."""
    if raw.health and (status := raw.health.get("Status")):
        try:
            return ContainerHealth(str(status).lower())
        except ValueError:
            pass

    if "(healthy)" in raw.status:
        return ContainerHealth.HEALTHY
    if "(unhealthy)" in raw.status:
        return ContainerHealth.UNHEALTHY
    if "(health: starting)" in raw.status:
        return ContainerHealth.STARTING
    return None


def to_container(raw: ApiContainer) -> Container:
    """Convert a Docker API container into a Container."""
    name = raw.names[0].lstrip("/") if raw.names else raw.id[:12]
    status = STATE_TO_STATUS.get(raw.state.lower(), ContainerStatus.UNKNOWN)

    uptime = None
    if status is ContainerStatus.RUNNING and (
        match := UPTIME_PATTERN.search(raw.status)
    ):
        uptime = match.group(1)

    return Container(
        id=raw.id,
        name=name,
        kind=container_kind(raw, name),
        image=raw.image,
        status=status,
        health=container_health(raw),
        ports={
            str(port.private_port): str(port.public_port)
            for port in raw.ports or []
            if port.private_port and port.public_port
        },
        created=datetime.fromtimestamp(raw.created, timezone.utc),
        uptime=uptime,
        labels=dict(raw.labels or {}),
    )


def demultiplex_logs(data: bytes) -> str:
    """Strip the Docker stream framing from a non-TTY logs response."""
    output: list[bytes] = []
    offset = 0
    while offset + 8 <= len(data):
        stream, size = struct.unpack(">BxxxL", data[offset : offset + 8])
        if stream not in (0, 1, 2):
            # Not multiplexed (TTY container): the payload is raw text
            return data.decode(errors="replace")
        output.append(data[offset + 8 : offset + 8 + size])
        offset += 8 + size
    if offset < len(data) and not output:
        return data.decode(errors="replace")
    return b"".join(output).decode(errors="replace")


@dataclass(kw_only=True)
class DockerClient:
    """Thin Docker REST client with a short-lived container list cache."""

    config: DockerConfig
    session: aiohttp.ClientSession = field(repr=False)
    base_url: str
    _cache: Sequence[Container] | None = field(default=None, init=False, repr=False)
    _cached_at: float = field(default=0.0, init=False, repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: DockerConfig
    ) -> AsyncGenerator["DockerClient", None]:
        """Create client with managed session lifecycle."""
        connector: aiohttp.BaseConnector | None = None
        base_url = config.url
        if config.url.startswith("unix://"):
            connector = aiohttp.UnixConnector(path=config.url.removeprefix("unix://"))
            base_url = "http://docker"

        async with aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=config.request_timeout),
        ) as session:
            yield cls(config=config, session=session, base_url=base_url.rstrip("/"))

    async def ping(self) -> bool:
        """Check that the Docker daemon answers."""
        try:
            async with self.session.get(f"{self.base_url}/_ping") as response:
                return response.status == 200
        except (aiohttp.ClientError, TimeoutError) as e:
            log.info("Docker daemon not reachable: %s", e)
            return False

    async def list_containers(self, force_refresh: bool = False) -> Sequence[Container]:
        """List all containers, serving from cache within the TTL.

        On API failure the last cached list is returned if there is one.

        Raises:
            ContainerApiError: If the API fails and nothing is cached

        """
        now = time.monotonic()
        if (
            not force_refresh
            and self._cache is not None
            and now - self._cached_at < self.config.cache_ttl
        ):
            return self._cache

        try:
            data = await self._get_json("/containers/json", params={"all": "true"})
            if not isinstance(data, list):
                raise ContainerApiError(
                    f"Expected a list of containers, got {type(data).__name__}"
                )
            containers = [to_container(ApiContainer.model_validate(c)) for c in data]
        except (ContainerApiError, ValidationError) as e:
            if self._cache is not None:
                log.warning("Docker API failed, using cached containers: %s", e)
                return self._cache
            if isinstance(e, ContainerApiError):
                raise
            raise ContainerApiError(f"Unexpected container payload: {e}") from e

        self._cache = containers
        self._cached_at = now
        return containers

    async def find_engine_container(self, engine_id: str) -> Container | None:
        """Find the container running an engine (e.g., 'lucee5')."""
        return await self._find("engine", (engine_id.lower(),))

    async def find_database_container(self, database_id: str) -> Container | None:
        """Find the container running a database.

        H2 is embedded in the engine, so a virtual running container is returned.
        """
        key = database_id.lower()
        if key == "h2":
            return Container(
                id="h2-embedded",
                name="h2-embedded",
                kind="database",
                image="h2:embedded",
                status=ContainerStatus.RUNNING,
                created=datetime.now(timezone.utc),
                labels={TYPE_LABEL: "database"},
            )
        return await self._find("database", DATABASE_MATCH.get(key, (key,)))

    async def stop_container(self, container_id: str) -> None:
        """Stop a container."""
        await self._post(f"/containers/{container_id}/stop")
        self._cache = None

    async def restart_container(self, container_id: str) -> None:
        """Restart a container."""
        await self._post(f"/containers/{container_id}/restart")
        self._cache = None

    async def container_logs(self, container_id: str, tail: int = 100) -> str:
        """Return the last ``tail`` lines of a container's output."""
        url = f"{self.base_url}/containers/{container_id}/logs"
        params = {"stdout": "true", "stderr": "true", "tail": str(tail)}
        try:
            async with self.session.get(url, params=params) as response:
                if response.status != 200:
                    text = await response.text()
                    raise ContainerApiError(
                        f"Failed to get logs: {response.status} {text}"
                    )
                data = await response.read()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ContainerApiError(f"Docker API request failed: {e}") from e
        return demultiplex_logs(data)

    async def _find(
        self, kind: ContainerKind, fragments: Sequence[str]
    ) -> Container | None:
        for force_refresh in (False, True):
            for container in await self.list_containers(force_refresh=force_refresh):
                if container.kind != kind:
                    continue
                haystack = f"{container.name} {container.image}".lower()
                if any(fragment in haystack for fragment in fragments):
                    return container
        return None

    async def _get_json(
        self, url: str, params: Mapping[str, str] | None = None
    ) -> object:
        try:
            async with self.session.get(
                f"{self.base_url}{url}", params=params
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise ContainerApiError(
                        f"Docker API returned {response.status}: {text}"
                    )
                return await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise ContainerApiError(f"Docker API request failed: {e}") from e

    async def _post(self, url: str) -> None:
        try:
            async with self.session.post(f"{self.base_url}{url}") as response:
                # 304 means the container was already in the requested state
                if response.status not in (204, 304):
                    text = await response.text()
                    raise ContainerApiError(
                        f"Docker API returned {response.status}: {text}"
                    )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ContainerApiError(f"Docker API request failed: {e}") from e
