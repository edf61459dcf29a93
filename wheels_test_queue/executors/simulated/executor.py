"""Simulated executor that fabricates plausible results without an engine."""

import asyncio
import logging
import random
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from wheels_test_queue.executors.base import TestExecutor, utcnow
from wheels_test_queue.executors.simulated.config import SimulatedConfig
from wheels_test_queue.models.registry import Bundle, Database, Engine, Spec
from wheels_test_queue.models.result import (
    TestError,
    TestResult,
    TestRun,
    TestStatus,
    TestSummary,
)

log = logging.getLogger(__name__)

TEST_NAMES: Mapping[str, Sequence[str]] = {
    "core": (
        "findAll() should return query result",
        "findByKey() should locate correct record",
        "save() should persist the object",
        "delete() should remove record",
        "transaction() should handle rollbacks",
    ),
    "controller": (
        "verifies() should validate parameters",
        "renderView() should render template",
        "redirectTo() should set location header",
        "filters() should apply before actions",
        "provides('json') should return JSON",
    ),
    "view": (
        "textField() outputs correct HTML",
        "select() creates dropdown correctly",
        "linkTo() creates anchor tags",
        "paginationLinks() shows page controls",
        "truncate() handles long strings",
    ),
    "plugin": (
        "plugin hooks initialize correctly",
        "plugin can extend controller methods",
        "multiple plugins can coexist",
        "plugin settings are configured",
        "plugin can be uninstalled cleanly",
    ),
}
TEST_NAMES_BY_BUNDLE: Mapping[str, str] = {"model": "core"}

FAILURE_MESSAGES: Sequence[str] = (
    "Expected [true] but got [false]",
    "Expected query to return records but none found",
    "Expected [1] but got [0]",
    "Expected validation to fail but it passed",
)

ERROR_MESSAGES: Sequence[str] = (
    "Database connection failed",
    "Query timeout exceeded",
    "Connection pool exhausted",
    "Unsupported operation in current engine",
)


def simulated_test_name(bundle_id: str, index: int) -> str:
    """Return a realistic test name for the ``index``-th test of a bundle."""
    pool_key = TEST_NAMES_BY_BUNDLE.get(bundle_id, bundle_id)
    if pool_key in TEST_NAMES:
        pool = TEST_NAMES[pool_key]
        return pool[index % len(pool)]

    categories = list(TEST_NAMES)
    category = categories[index % len(categories)]
    pool = TEST_NAMES[category]
    return f"{category.title()}: {pool[(index // len(categories)) % len(pool)]}"


@dataclass(frozen=True, kw_only=True)
class SimulatedExecutor(TestExecutor):
    """Fabricates results for demos and UI development."""

    config: SimulatedConfig
    rng: random.Random = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: SimulatedConfig
    ) -> AsyncGenerator["SimulatedExecutor", None]:
        """Create executor with its random generator."""
        yield cls(config=config, rng=random.Random(config.seed))

    async def run_tests(
        self,
        run_id: str,
        engine: Engine,
        database: Database,
        bundle: Bundle,
        spec: Spec | None = None,
    ) -> TestRun:
        """Sleep for the configured delay and return fabricated results."""
        run = self.start_run(run_id, engine, database, bundle, spec)
        total = self.rng.randint(self.config.min_tests, self.config.max_tests)
        log.info(
            "Simulating %d test(s) for %s on %s with %s",
            total,
            bundle.id,
            engine.label,
            database.name,
        )

        await asyncio.sleep(self.config.delay)

        failure_rate = (
            self.config.sqlserver_failure_rate
            if database.name == "SQL Server"
            else self.config.failure_rate
        )
        results = [
            self._result(index, bundle.id, failure_rate) for index in range(total)
        ]
        return self.finish_run(run, results, TestSummary.from_results(results))

    def _result(self, index: int, bundle_id: str, failure_rate: float) -> TestResult:
        roll = self.rng.random()
        error = None
        if roll < failure_rate:
            status = TestStatus.FAILED
            error = TestError(
                message=self.rng.choice(FAILURE_MESSAGES),
                detail=f"Assertion failed at line {self.rng.randint(1, 500)}",
            )
        elif roll < failure_rate + self.config.error_rate:
            status = TestStatus.ERROR
            error = TestError(
                message=self.rng.choice(ERROR_MESSAGES),
                detail=f"Error in /wheels/tests/{bundle_id} at line "
                f"{self.rng.randint(1, 500)}",
            )
        elif roll < failure_rate + self.config.error_rate + self.config.skip_rate:
            status = TestStatus.SKIPPED
        else:
            status = TestStatus.PASSED

        return TestResult(
            id=f"test_{index}",
            name=simulated_test_name(bundle_id, index),
            status=status,
            duration=0.05 + self.rng.random() * 0.8,
            timestamp=utcnow(),
            error=error,
        )
