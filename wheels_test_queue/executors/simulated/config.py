"""Configuration for the simulated executor."""

from pydantic import BaseModel, Field, model_validator


class SimulatedConfig(BaseModel):
    """Configuration for the simulated executor.

    Rates are probabilities per test; SQL Server runs use
    ``sqlserver_failure_rate`` in place of ``failure_rate``.
    """

    seed: int | None = None
    delay: float = Field(default=3.0, ge=0)
    min_tests: int = Field(default=20, ge=1)
    max_tests: int = Field(default=120, ge=1)
    failure_rate: float = Field(default=0.05, ge=0, le=1)
    sqlserver_failure_rate: float = Field(default=0.15, ge=0, le=1)
    error_rate: float = Field(default=0.02, ge=0, le=1)
    skip_rate: float = Field(default=0.03, ge=0, le=1)

    @model_validator(mode="after")
    def check_ranges(self) -> "SimulatedConfig":
        """Validate that ranges and rates are consistent."""
        if self.min_tests > self.max_tests:
            raise ValueError("min_tests must not exceed max_tests")
        worst = max(self.failure_rate, self.sqlserver_failure_rate)
        if worst + self.error_rate + self.skip_rate > 1:
            raise ValueError("failure, error and skip rates must add up to at most 1")
        return self
