"""Pydantic models for TestBox runner responses.

Two historical shapes exist: the modern ``bundleStats`` tree and the legacy
flat ``results`` array. Both carry summary counts under varying field names,
which the parser reconciles.
"""

from collections.abc import Sequence
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RunnerModel(BaseModel):
    """Lenient base for runner payloads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SummaryCounts(RunnerModel):
    """Summary counts under any of their known field names."""

    total: int | None = Field(
        default=None,
        validation_alias=AliasChoices("totalSpecs", "totalExecuted", "totalTests"),
    )
    passed: int | None = Field(
        default=None, validation_alias=AliasChoices("totalPass", "totalPassed")
    )
    failed: int | None = Field(
        default=None, validation_alias=AliasChoices("totalFail", "totalFailed")
    )
    errors: int | None = Field(
        default=None, validation_alias=AliasChoices("totalError", "totalErrors")
    )
    skipped: int | None = Field(
        default=None, validation_alias=AliasChoices("totalSkipped", "totalSkip")
    )

    @property
    def is_empty(self) -> bool:
        """Whether none of the count fields were present."""
        return all(
            value is None
            for value in (
                self.total,
                self.passed,
                self.failed,
                self.errors,
                self.skipped,
            )
        )


class SpecStats(RunnerModel):
    """A single spec in the modern shape."""

    id: str | int | None = None
    name: str = ""
    status: str | None = None
    total_duration: float = Field(default=0, validation_alias="totalDuration")
    fail_message: str | None = Field(default=None, validation_alias="failMessage")
    fail_detail: Any = Field(default="", validation_alias="failDetail")
    error: Any = None


class SuiteStats(RunnerModel):
    """A suite in the modern shape; suites may nest."""

    id: str | int | None = None
    name: str = ""
    spec_stats: Sequence[SpecStats] = Field(
        default_factory=list, validation_alias="specStats"
    )
    suite_stats: Sequence["SuiteStats"] = Field(
        default_factory=list, validation_alias="suiteStats"
    )


class BundleStats(RunnerModel):
    """A bundle in the modern shape."""

    id: str | int | None = None
    name: str = ""
    path: str = ""
    suite_stats: Sequence[SuiteStats] = Field(
        default_factory=list, validation_alias="suiteStats"
    )


class BundleStatsResponse(SummaryCounts):
    """Modern response: ``bundleStats[].suiteStats[].specStats[]``."""

    bundle_stats: Sequence[BundleStats] = Field(validation_alias="bundleStats")


class LegacyResult(RunnerModel):
    """An entry of the legacy flat ``results`` array."""

    id: str | int | None = None
    name: str = Field(
        default="",
        validation_alias=AliasChoices("name", "testName", "cleanTestName"),
    )
    status: str | None = None
    duration: float = Field(
        default=0, validation_alias=AliasChoices("duration", "time", "totalDuration")
    )
    message: str | None = None
    detail: Any = ""


class LegacyResponse(SummaryCounts):
    """Legacy response with a flat ``results`` array."""

    results: Sequence[LegacyResult]
