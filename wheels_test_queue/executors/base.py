"""Abstract base class for test executors."""

import traceback
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from wheels_test_queue.models.registry import Bundle, Database, Engine, Spec
from wheels_test_queue.models.result import (
    TestError,
    TestResult,
    TestRun,
    TestStatus,
    TestSummary,
)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class TestExecutor(ABC):
    """Runs one (engine, database, bundle) combination to completion.

    Implementations must always return a terminal TestRun: failures are
    reported through the run itself, never raised.
    """

    __test__ = False

    @abstractmethod
    async def run_tests(
        self,
        run_id: str,
        engine: Engine,
        database: Database,
        bundle: Bundle,
        spec: Spec | None = None,
    ) -> TestRun:
        """Execute the tests and return the completed run.

        Args:
            run_id: Identifier to give the run (the queue item id)
            engine: Engine to run the tests on
            database: Database the engine should use
            bundle: Bundle of tests to run
            spec: Optional spec within the bundle

        Returns:
            Terminal test run

        """

    def engine_url(self, engine: Engine) -> str:
        """Return the base URL at which this executor reaches ``engine``."""
        return engine.url

    @staticmethod
    def start_run(
        run_id: str,
        engine: Engine,
        database: Database,
        bundle: Bundle,
        spec: Spec | None = None,
    ) -> TestRun:
        """Create a run in the Running state."""
        return TestRun(
            id=run_id,
            engine=engine,
            database=database,
            bundle=bundle,
            spec=spec,
            status=TestStatus.RUNNING,
            start_time=utcnow(),
        )

    @staticmethod
    def finish_run(
        run: TestRun,
        results: Sequence[TestResult],
        summary: TestSummary,
    ) -> TestRun:
        """Complete a run from its results and summary."""
        end_time = utcnow()
        if summary.failed > 0 or summary.errors > 0:
            status = TestStatus.FAILED
        else:
            status = TestStatus.PASSED
        return replace(
            run,
            status=status,
            end_time=end_time,
            duration=(end_time - run.start_time).total_seconds(),
            results=tuple(results),
            summary=summary,
        )

    @staticmethod
    def error_run(run: TestRun, error: BaseException) -> TestRun:
        """Complete a run as Error with a single result describing ``error``."""
        end_time = utcnow()
        detail = "".join(traceback.format_exception(error)).strip()
        return replace(
            run,
            status=TestStatus.ERROR,
            end_time=end_time,
            duration=(end_time - run.start_time).total_seconds(),
            results=(
                TestResult(
                    id="error",
                    name="Test execution failed",
                    status=TestStatus.ERROR,
                    duration=0.0,
                    timestamp=end_time,
                    error=TestError(
                        message=str(error) or type(error).__name__, detail=detail
                    ),
                ),
            ),
            summary=TestSummary(total=1, errors=1),
        )
