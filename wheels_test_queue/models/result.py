"""Models for test execution results."""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from wheels_test_queue.models.registry import Bundle, Database, Engine, Spec


class TestStatus(StrEnum):
    """Status of a queue item, a test run or a single test."""

    __test__ = False

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can happen from this status."""
        return self not in {TestStatus.PENDING, TestStatus.RUNNING}


@dataclass(frozen=True, kw_only=True)
class TestError:
    """Failure details attached to a failed or errored test."""

    __test__ = False

    message: str
    detail: str = ""


@dataclass(frozen=True, kw_only=True)
class TestResult:
    """Outcome of a single test within a run."""

    __test__ = False

    id: str
    name: str
    status: TestStatus
    duration: float
    timestamp: datetime
    error: TestError | None = None


@dataclass(frozen=True, kw_only=True)
class TestSummary:
    """Aggregate counts of a run."""

    __test__ = False

    total: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    skipped: int = 0

    @property
    def accounted(self) -> int:
        """Number of tests that landed in one of the outcome buckets."""
        return self.passed + self.failed + self.errors + self.skipped

    def __add__(self, other: "TestSummary") -> "TestSummary":
        return TestSummary(
            total=self.total + other.total,
            passed=self.passed + other.passed,
            failed=self.failed + other.failed,
            errors=self.errors + other.errors,
            skipped=self.skipped + other.skipped,
        )

    @classmethod
    def from_results(cls, results: Iterable[TestResult]) -> "TestSummary":
        """Count results per status. Unknown results are left out of the total."""
        counts = {status: 0 for status in TestStatus}
        for result in results:
            counts[result.status] += 1
        counted = (
            TestStatus.PASSED,
            TestStatus.FAILED,
            TestStatus.ERROR,
            TestStatus.SKIPPED,
        )
        return cls(
            total=sum(counts[status] for status in counted),
            passed=counts[TestStatus.PASSED],
            failed=counts[TestStatus.FAILED],
            errors=counts[TestStatus.ERROR],
            skipped=counts[TestStatus.SKIPPED],
        )


@dataclass(frozen=True, kw_only=True)
class TestRun:
    """Record of executing one queue item.

    Runs are immutable; a state change produces a new instance through
    ``dataclasses.replace``.
    """

    __test__ = False

    id: str
    engine: Engine
    database: Database
    bundle: Bundle
    spec: Spec | None = None
    status: TestStatus = TestStatus.RUNNING
    start_time: datetime
    end_time: datetime | None = None
    duration: float | None = None
    results: Sequence[TestResult] = field(default_factory=tuple)
    summary: TestSummary = field(default_factory=TestSummary)

    @property
    def is_terminal(self) -> bool:
        """Whether the run has finished, one way or another."""
        return self.status.is_terminal and self.end_time is not None
