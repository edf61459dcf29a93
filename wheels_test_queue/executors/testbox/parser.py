"""Parse TestBox runner responses into canonical results."""

import json
import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import ValidationError

from wheels_test_queue.errors import RunnerSchemaError
from wheels_test_queue.executors.testbox.models import (
    BundleStatsResponse,
    LegacyResponse,
    LegacyResult,
    SpecStats,
    SuiteStats,
    SummaryCounts,
)
from wheels_test_queue.models.result import (
    TestError,
    TestResult,
    TestStatus,
    TestSummary,
)

log = logging.getLogger(__name__)

RUNNER_STATUS: Mapping[str, TestStatus] = {
    "Passed": TestStatus.PASSED,
    "Failed": TestStatus.FAILED,
    "Error": TestStatus.ERROR,
    "Skipped": TestStatus.SKIPPED,
}

ResponseShape = Literal["bundle_stats", "legacy", "summary"]


@dataclass(frozen=True, kw_only=True)
class ParsedResponse:
    """Canonical form of a runner response, whichever shape it came in."""

    shape: ResponseShape
    results: Sequence[TestResult]
    summary: TestSummary


def map_status(value: str | None) -> TestStatus:
    """Map a runner status string to a TestStatus (case-sensitive)."""
    if value is None:
        return TestStatus.UNKNOWN
    return RUNNER_STATUS.get(value, TestStatus.UNKNOWN)


def looks_like_html(body: str) -> bool:
    """Check whether a body is an HTML page rather than a JSON document."""
    head = body.lstrip()[:64].lower()
    return head.startswith(("<!doctype html", "<html"))


def parse_runner_response(body: str) -> ParsedResponse:
    """Parse a runner response body.

    Tries the modern ``bundleStats`` shape, then the legacy ``results`` shape,
    then falls back to summary counts alone.

    Raises:
        RunnerSchemaError: If the body is HTML, not a JSON object, or carries
            neither results nor summary counts

    """
    if looks_like_html(body):
        raise RunnerSchemaError("Received HTML instead of JSON from test runner")

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise RunnerSchemaError(f"Test runner returned invalid JSON: {e}") from e

    return parse_runner_payload(data)


def parse_runner_payload(data: Any) -> ParsedResponse:
    """Parse an already decoded runner payload."""
    if not isinstance(data, dict):
        raise RunnerSchemaError(
            f"Expected a JSON object from test runner, got {type(data).__name__}"
        )

    timestamp = datetime.now(timezone.utc)

    try:
        if "bundleStats" in data:
            modern = BundleStatsResponse.model_validate(data)
            results = list(_bundle_stats_results(modern, timestamp))
            return ParsedResponse(
                shape="bundle_stats",
                results=results,
                summary=canonical_summary(modern, results),
            )

        if "results" in data:
            legacy = LegacyResponse.model_validate(data)
            results = [
                _legacy_result(index, entry, timestamp)
                for index, entry in enumerate(legacy.results)
            ]
            return ParsedResponse(
                shape="legacy",
                results=results,
                summary=canonical_summary(legacy, results),
            )

        counts = SummaryCounts.model_validate(data)
    except ValidationError as e:
        raise RunnerSchemaError(f"Unrecognized test runner response: {e}") from e

    if counts.is_empty:
        raise RunnerSchemaError(
            "Test runner response has neither results nor summary counts"
        )

    log.info("Runner response carries summary counts only")
    return ParsedResponse(
        shape="summary", results=[], summary=canonical_summary(counts, [])
    )


def canonical_summary(
    counts: SummaryCounts, results: Sequence[TestResult]
) -> TestSummary:
    """Reconcile reported counts into a summary whose buckets add up to total.

    Without any reported counts the summary is derived from ``results``.
    A missing passed count is computed from the other buckets.
    """
    if counts.is_empty:
        return TestSummary.from_results(results)

    derived = TestSummary.from_results(results)
    failed = counts.failed if counts.failed is not None else derived.failed
    errors = counts.errors if counts.errors is not None else derived.errors
    skipped = counts.skipped if counts.skipped is not None else derived.skipped

    if counts.total is not None:
        total = counts.total
    elif counts.passed is not None:
        total = counts.passed + failed + errors + skipped
    else:
        total = derived.total

    if counts.passed is None:
        passed = max(total - failed - errors - skipped, 0)
    else:
        passed = counts.passed

    accounted = passed + failed + errors + skipped
    if accounted != total:
        log.warning(
            "Runner reported total=%d but outcome counts add up to %d",
            total,
            accounted,
        )
        total = accounted

    return TestSummary(
        total=total,
        passed=passed,
        failed=failed,
        errors=errors,
        skipped=skipped,
    )


def _walk_suites(
    suites: Sequence[SuiteStats], parents: tuple[str, ...]
) -> Iterator[tuple[tuple[str, ...], SpecStats]]:
    for suite in suites:
        path = (*parents, suite.name) if suite.name else parents
        for spec in suite.spec_stats:
            yield path, spec
        yield from _walk_suites(suite.suite_stats, path)


def _bundle_stats_results(
    response: BundleStatsResponse, timestamp: datetime
) -> Iterator[TestResult]:
    index = 0
    for bundle in response.bundle_stats:
        for suite_path, spec in _walk_suites(bundle.suite_stats, ()):
            status = map_status(spec.status)
            yield TestResult(
                id=str(spec.id) if spec.id is not None else f"test_{index}",
                name=" > ".join((*suite_path, spec.name)) if spec.name else "",
                status=status,
                duration=spec.total_duration / 1000,
                timestamp=timestamp,
                error=_spec_error(spec, status),
            )
            index += 1


def _spec_error(spec: SpecStats, status: TestStatus) -> TestError | None:
    if status not in {TestStatus.FAILED, TestStatus.ERROR}:
        return None

    message = spec.fail_message or ""
    detail: Any = spec.fail_detail
    if isinstance(spec.error, dict):
        message = message or str(spec.error.get("message", ""))
        detail = detail or spec.error.get("detail") or spec.error.get("stackTrace")

    return TestError(
        message=message or f"Test {status.value}",
        detail=_stringify(detail),
    )


def _legacy_result(
    index: int, entry: LegacyResult, timestamp: datetime
) -> TestResult:
    status = map_status(entry.status)
    error = None
    if status in {TestStatus.FAILED, TestStatus.ERROR}:
        error = TestError(
            message=entry.message or f"Test {status.value}",
            detail=_stringify(entry.detail),
        )
    return TestResult(
        id=str(entry.id) if entry.id is not None else f"test_{index}",
        name=entry.name,
        status=status,
        duration=entry.duration,
        timestamp=timestamp,
        error=error,
    )


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)
