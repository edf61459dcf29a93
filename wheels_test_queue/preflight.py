"""Pre-flight checks run before queuing tests for an engine/database pair."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import aiohttp

from wheels_test_queue.containers.client import DockerClient
from wheels_test_queue.errors import ContainerApiError
from wheels_test_queue.models.registry import Database, Engine

log = logging.getLogger(__name__)


class PreflightStepStatus(StrEnum):
    """Outcome of a pre-flight step."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, kw_only=True)
class PreflightStep:
    """Result of one pre-flight step."""

    id: str
    name: str
    status: PreflightStepStatus
    depends_on: Sequence[str] = ()
    error: str | None = None


@dataclass(frozen=True, kw_only=True)
class Preflight:
    """Result of a pre-flight run."""

    engine_id: str
    database_id: str
    steps: Sequence[PreflightStep]

    @property
    def success(self) -> bool:
        """Whether every step succeeded."""
        return all(step.status is PreflightStepStatus.SUCCESS for step in self.steps)

    def step(self, step_id: str) -> PreflightStep:
        """Return a step by id."""
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)


Check = Callable[[], Awaitable[str | None]]


@dataclass(frozen=True, kw_only=True)
class _StepDefinition:
    id: str
    name: str
    check: Check
    depends_on: Sequence[str] = field(default_factory=tuple)


async def run_preflight(
    engine: Engine,
    database: Database,
    docker: DockerClient,
    session: aiohttp.ClientSession,
    engine_url: str | None = None,
) -> Preflight:
    """Check that the engine and database are up and the engine answers HTTP.

    ``engine_url`` is the address the tests will be sent to; it defaults to
    the registry entry's ``Engine.url``.

    Steps run in order; a step whose dependencies did not succeed is skipped.
    Each check returns None on success or an error message.
    """

    async def check_docker() -> str | None:
        if await docker.ping():
            return None
        return "Docker daemon is not reachable"

    async def check_engine() -> str | None:
        container = await docker.find_engine_container(engine.id)
        if container is None:
            return f"No container found for engine {engine.id}"
        if not container.is_running:
            return f"Engine container {container.name} is {container.status}"
        return None

    async def check_database() -> str | None:
        container = await docker.find_database_container(database.id)
        if container is None:
            return f"No container found for database {database.id}"
        if not container.is_running:
            return f"Database container {container.name} is {container.status}"
        return None

    url = engine_url or engine.url

    async def check_engine_http() -> str | None:
        async with session.get(url) as response:
            if response.status >= 500:
                return f"Engine at {url} answered {response.status}"
        return None

    definitions = [
        _StepDefinition(
            id="check_docker", name="Check Docker service", check=check_docker
        ),
        _StepDefinition(
            id="check_engine",
            name=f"Check {engine.id} engine",
            check=check_engine,
            depends_on=("check_docker",),
        ),
        _StepDefinition(
            id="check_database",
            name=f"Check {database.id} database",
            check=check_database,
            depends_on=("check_docker",),
        ),
        _StepDefinition(
            id="check_engine_http",
            name="Check engine responds",
            check=check_engine_http,
            depends_on=("check_engine", "check_database"),
        ),
    ]

    log.info("Running pre-flight for engine=%s database=%s", engine.id, database.id)
    outcomes: dict[str, PreflightStepStatus] = {}
    steps: list[PreflightStep] = []

    for definition in definitions:
        if any(
            outcomes.get(dep) is not PreflightStepStatus.SUCCESS
            for dep in definition.depends_on
        ):
            status = PreflightStepStatus.SKIPPED
            error: str | None = "Skipped due to failed dependencies"
        else:
            try:
                error = await definition.check()
            except (ContainerApiError, aiohttp.ClientError, TimeoutError) as e:
                error = str(e) or type(e).__name__
            status = (
                PreflightStepStatus.SUCCESS
                if error is None
                else PreflightStepStatus.FAILED
            )

        outcomes[definition.id] = status
        steps.append(
            PreflightStep(
                id=definition.id,
                name=definition.name,
                status=status,
                depends_on=definition.depends_on,
                error=error,
            )
        )
        log.info("Pre-flight %s: %s (%s)", definition.id, status, error or "ok")

    return Preflight(engine_id=engine.id, database_id=database.id, steps=steps)
