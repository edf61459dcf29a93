"""Integration tests for the TestBox executor."""

from collections.abc import AsyncGenerator

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls
from yarl import URL

from wheels_test_queue.executors.testbox import TestBoxConfig, TestBoxExecutor
from wheels_test_queue.models.registry import Engine
from wheels_test_queue.models.result import TestRun, TestStatus, TestSummary
from wheels_test_queue.registry import default_registry
from wheels_test_queue.testing.factories import EngineFactory, SpecFactory
from wheels_test_queue.testing.testbox.payloads import (
    bundle_stats_response,
    legacy_response,
    legacy_result,
    spec_stats,
    summary_response,
)

RUNNER_URL = "http://localhost:60006/wheels/testbox"


@pytest.fixture
def config() -> TestBoxConfig:
    """Create test configuration."""
    return TestBoxConfig()


@pytest.fixture
async def executor(
    config: TestBoxConfig, aioresponses: aioresponses_cls
) -> AsyncGenerator[TestBoxExecutor, None]:
    """Create executor with managed session."""
    async with TestBoxExecutor.from_config(config) as impl:
        yield impl


def runner_url(**params: str) -> str:
    """Build the runner URL with the default query parameters."""
    query = {
        "format": "json",
        "sort": "directory asc",
        "db": "mysql",
        "timeout": "1800",
        **params,
    }
    return str(URL(RUNNER_URL).with_query(query))


def sent_query(aioresponses: aioresponses_cls) -> dict[str, str]:
    """Return the query parameters of the single request made."""
    [(method, url)] = list(aioresponses.requests)
    assert method == "GET"
    return dict(url.query)


async def run_core(executor: TestBoxExecutor, engine_id: str = "lucee6") -> TestRun:
    """Run the core bundle against MySQL."""
    registry = default_registry()
    return await executor.run_tests(
        "lucee6_mysql_core_1_1",
        registry.get_engine(engine_id),
        registry.get_database("mysql"),
        registry.get_bundle("core"),
    )


class TestRunTests:
    """Tests for run_tests."""

    async def test_passing_bundle(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Returns a passed run built from the modern response."""
        aioresponses.get(
            runner_url(testBundles="core"),
            status=200,
            payload=bundle_stats_response(
                specs=[spec_stats(), spec_stats(spec_id="spec-2", status="Skipped")]
            ),
        )

        run = await run_core(executor)

        assert run.id == "lucee6_mysql_core_1_1"
        assert run.status is TestStatus.PASSED
        assert run.is_terminal
        assert run.summary == TestSummary(total=2, passed=1, skipped=1)
        assert [r.status for r in run.results] == [
            TestStatus.PASSED,
            TestStatus.SKIPPED,
        ]

    async def test_sends_runner_parameters(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Sends format, sort, db, timeout and bundle to the runner."""
        aioresponses.get(
            runner_url(testBundles="core"),
            status=200,
            payload=summary_response(total=1, passed=1, failed=0, errors=0),
        )

        await run_core(executor)

        assert sent_query(aioresponses) == {
            "format": "json",
            "sort": "directory asc",
            "db": "mysql",
            "timeout": "1800",
            "testBundles": "core",
        }

    async def test_all_bundle_and_spec_parameters(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Omits testBundles for the full suite and sends the spec."""
        spec = SpecFactory.build(id="finders", bundle_id="all")
        aioresponses.get(
            runner_url(db="h2", testSpecs="finders"),
            status=200,
            payload=summary_response(total=1, passed=1, failed=0, errors=0),
        )
        registry = default_registry()

        run = await executor.run_tests(
            "run-1",
            registry.get_engine("lucee6"),
            registry.get_database("h2"),
            registry.get_bundle("all"),
            spec,
        )

        assert run.status is TestStatus.PASSED
        query = sent_query(aioresponses)
        assert "testBundles" not in query
        assert query["testSpecs"] == "finders"
        assert run.spec == spec

    async def test_summary_only_response(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Builds the run from counts alone when no results are sent."""
        aioresponses.get(
            runner_url(testBundles="core"), status=200, payload=summary_response()
        )

        run = await run_core(executor)

        assert run.status is TestStatus.FAILED
        assert run.results == ()
        assert run.summary == TestSummary(
            total=10, passed=8, failed=1, errors=1, skipped=0
        )

    async def test_legacy_failures(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Reports failures from the legacy response shape."""
        aioresponses.get(
            runner_url(testBundles="core"),
            status=200,
            payload=legacy_response(
                results=[
                    legacy_result(),
                    legacy_result(
                        result_id="test_2",
                        status="Failed",
                        message="Expected [1] but got [0]",
                    ),
                ]
            ),
        )

        run = await run_core(executor)

        assert run.status is TestStatus.FAILED
        assert run.summary == TestSummary(total=2, passed=1, failed=1)
        assert run.results[1].error is not None
        assert run.results[1].error.message == "Expected [1] but got [0]"

    async def test_malformed_body_is_error_run(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Returns an Error run for a body that is not JSON."""
        aioresponses.get(
            runner_url(testBundles="core"), status=200, body="Application error"
        )

        run = await run_core(executor)

        assert run.status is TestStatus.ERROR
        assert run.is_terminal
        assert run.summary == TestSummary(total=1, errors=1)
        assert run.results[0].error is not None
        assert "invalid JSON" in run.results[0].error.message

    async def test_html_body_is_error_run(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Returns an Error run for an HTML page."""
        aioresponses.get(
            runner_url(testBundles="core"),
            status=200,
            body="<html><body>Lucee error</body></html>",
            content_type="text/html",
        )

        run = await run_core(executor)

        assert run.status is TestStatus.ERROR
        assert run.results[0].error is not None
        assert run.results[0].error.message == (
            "Received HTML instead of JSON from test runner"
        )

    async def test_http_error_is_error_run(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Returns an Error run when the runner answers with a server error."""
        aioresponses.get(
            runner_url(testBundles="core"), status=500, body="Internal Server Error"
        )

        run = await run_core(executor)

        assert run.status is TestStatus.ERROR
        assert run.results[0].error is not None
        assert "500" in run.results[0].error.message

    async def test_connection_refused_is_error_run(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Returns an Error run when the engine cannot be reached."""
        aioresponses.get(
            runner_url(testBundles="core"),
            exception=aiohttp.ClientConnectionError("Connection refused"),
        )

        run = await run_core(executor)

        assert run.status is TestStatus.ERROR
        assert run.results[0].error is not None
        assert "Failed to reach test runner" in run.results[0].error.message

    async def test_timeout_is_error_run(
        self, executor: TestBoxExecutor, aioresponses: aioresponses_cls
    ) -> None:
        """Returns an Error run when the runner does not answer in time."""
        aioresponses.get(runner_url(testBundles="core"), exception=TimeoutError())

        run = await run_core(executor)

        assert run.status is TestStatus.ERROR
        assert run.results[0].error is not None
        assert "did not respond" in run.results[0].error.message


class TestEnginePort:
    """Tests for engine port resolution."""

    @pytest.mark.parametrize(
        ("engine_id", "port"),
        [
            ("lucee5", 60005),
            ("lucee6", 60006),
            ("adobe2018", 62018),
            ("adobe2021", 62021),
            ("adobe2023", 62023),
        ],
    )
    async def test_known_engines(
        self, executor: TestBoxExecutor, engine_id: str, port: int
    ) -> None:
        """Maps each supported engine to its published port."""
        engine = default_registry().get_engine(engine_id)

        assert executor.engine_port(engine) == port

    async def test_unknown_engine_uses_its_port(
        self, executor: TestBoxExecutor
    ) -> None:
        """Falls back to the engine's own port."""
        engine = EngineFactory.build(name="BoxLang", version="1", port=60010)

        assert executor.engine_port(engine) == 60010

    async def test_unknown_engine_without_port_uses_default(
        self, executor: TestBoxExecutor
    ) -> None:
        """Falls back to the configured default port."""
        engine = EngineFactory.build(name="BoxLang", version="1", port=0)

        assert executor.engine_port(engine) == 8080

    async def test_override_wins(self) -> None:
        """Prefers a configured override over the port table."""
        config = TestBoxConfig(host="engines.test", port_overrides={"lucee6": 8888})
        engine: Engine = default_registry().get_engine("lucee6")

        async with TestBoxExecutor.from_config(config) as executor:
            url = executor.runner_url(engine)

        assert url == "http://engines.test:8888/wheels/testbox"

    async def test_engine_url_matches_runner_host(self) -> None:
        """Resolves the engine base URL from the configured scheme and host."""
        config = TestBoxConfig(
            scheme="https", host="runner.internal", port_overrides={"lucee5": 9999}
        )
        engine: Engine = default_registry().get_engine("lucee5")

        async with TestBoxExecutor.from_config(config) as executor:
            assert executor.engine_url(engine) == "https://runner.internal:9999"
            assert executor.runner_url(engine).startswith(executor.engine_url(engine))
