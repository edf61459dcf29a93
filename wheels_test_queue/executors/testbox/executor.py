"""TestBox executor implementation."""

import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import aiohttp

from wheels_test_queue.errors import (
    RunnerError,
    RunnerNetworkError,
    RunnerSchemaError,
)
from wheels_test_queue.executors.base import TestExecutor
from wheels_test_queue.executors.testbox.config import TestBoxConfig
from wheels_test_queue.executors.testbox.parser import parse_runner_response
from wheels_test_queue.models.registry import Bundle, Database, Engine, Spec
from wheels_test_queue.models.result import TestRun

log = logging.getLogger(__name__)

ENGINE_PORTS: Mapping[tuple[str, str], int] = {
    ("Lucee", "5"): 60005,
    ("Lucee", "6"): 60006,
    ("Adobe", "2018"): 62018,
    ("Adobe", "2021"): 62021,
    ("Adobe", "2023"): 62023,
}

DatabaseParams = Mapping[str, str | int | bool]

DATABASE_PARAMS: Mapping[str, DatabaseParams] = {
    "H2": {"dsn": "wheelstestdb", "database_type": "h2", "h2_inmemory": True},
    "MySQL": {
        "dsn": "wheelstestdb",
        "database_type": "mysql",
        "host": "mysql",
        "port": 3306,
    },
    "PostgreSQL": {
        "dsn": "wheelstestdb",
        "database_type": "postgresql",
        "host": "postgres",
        "port": 5432,
    },
    "SQL Server": {
        "dsn": "wheelstestdb",
        "database_type": "sqlserver",
        "host": "sqlserver",
        "port": 1433,
    },
    "Oracle": {
        "dsn": "wheelstestdb",
        "database_type": "oracle",
        "host": "oracle",
        "port": 1521,
    },
}


def database_params(database: Database) -> DatabaseParams:
    """Return the connection parameters the runner uses for a database."""
    return DATABASE_PARAMS.get(
        database.name, {"dsn": "wheelstestdb", "database_type": "unknown"}
    )


@dataclass(frozen=True, kw_only=True)
class TestBoxExecutor(TestExecutor):
    """Runs a bundle through the TestBox HTTP runner of an engine."""

    config: TestBoxConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: TestBoxConfig
    ) -> AsyncGenerator["TestBoxExecutor", None]:
        """Create executor with managed session lifecycle."""
        timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield cls(config=config, session=session)

    def engine_port(self, engine: Engine) -> int:
        """Resolve the port the engine's test runner listens on."""
        if engine.id in self.config.port_overrides:
            return self.config.port_overrides[engine.id]
        if (port := ENGINE_PORTS.get((engine.name, engine.version))) is not None:
            return port
        if engine.port:
            return engine.port
        return self.config.default_port

    def engine_url(self, engine: Engine) -> str:
        """Build the base URL of an engine's test runner host."""
        return f"{self.config.scheme}://{self.config.host}:{self.engine_port(engine)}"

    def runner_url(self, engine: Engine) -> str:
        """Build the runner URL for an engine."""
        return f"{self.engine_url(engine)}{self.config.runner_path}"

    def runner_params(
        self, database: Database, bundle: Bundle, spec: Spec | None = None
    ) -> dict[str, str]:
        """Build the runner query parameters."""
        params = {
            "format": "json",
            "sort": self.config.sort,
            "db": database.runner_name,
            "timeout": str(self.config.runner_timeout),
        }
        if bundle.id != "all":
            params["testBundles"] = bundle.id
        if spec is not None:
            params["testSpecs"] = spec.id
        return params

    async def run_tests(
        self,
        run_id: str,
        engine: Engine,
        database: Database,
        bundle: Bundle,
        spec: Spec | None = None,
    ) -> TestRun:
        """Call the runner and convert its response into a terminal run."""
        run = self.start_run(run_id, engine, database, bundle, spec)
        url = self.runner_url(engine)
        params = self.runner_params(database, bundle, spec)

        log.info(
            "Running tests: run_id=%s, engine=%s, database=%s, bundle=%s, spec=%s, "
            "url=%s, db_params=%s",
            run_id,
            engine.label,
            database.name,
            bundle.id,
            spec.id if spec else None,
            url,
            database_params(database),
        )

        try:
            body = await self.fetch(url, params)
            parsed = parse_runner_response(body)
        except RunnerError as e:
            log.error("Test run %s failed: %s", run_id, e, exc_info=e)
            return self.error_run(run, e)

        finished = self.finish_run(run, parsed.results, parsed.summary)
        log.info(
            "Test run %s complete: shape=%s status=%s total=%d passed=%d "
            "failed=%d errors=%d skipped=%d",
            run_id,
            parsed.shape,
            finished.status,
            finished.summary.total,
            finished.summary.passed,
            finished.summary.failed,
            finished.summary.errors,
            finished.summary.skipped,
        )
        return finished

    async def fetch(self, url: str, params: Mapping[str, str]) -> str:
        """GET the runner and return the response body.

        Raises:
            RunnerNetworkError: On connection failure, timeout or HTTP error

        """
        try:
            async with self.session.get(url, params=params) as response:
                text = await response.text()
                if response.status >= 400:
                    raise RunnerNetworkError(
                        f"Test runner returned {response.status}: {text[:500]}"
                    )
                return text
        except TimeoutError as e:
            raise RunnerNetworkError(
                f"Test runner did not respond within {self.config.request_timeout}"
                " seconds"
            ) from e
        except aiohttp.ClientError as e:
            raise RunnerNetworkError(
                f"Failed to reach test runner at {url}: {e}"
            ) from e
        except UnicodeDecodeError as e:
            raise RunnerSchemaError(f"Test runner response is not text: {e}") from e
