"""Detection configuration.

DetectionConfig holds every tunable the pipeline reads: baseline window,
z-score and streak thresholds, privacy floors, recheck delay, and batch
concurrency. Defaults are the documented starting points; each can be
overridden with a RHYTHM_-prefixed environment variable or a line in a local
.env file.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "RHYTHM_"


class DetectionConfig(BaseSettings):
    """All pipeline tunables, validated at construction.

    Attributes:
        baseline_window_weeks: Completed weeks preceding the evaluation week
            that form the baseline.
        min_baseline_weeks: Weeks with data required for a usable baseline.
        info_z: |z| at or above which a Signal is emitted at all.
        risk_z: |z| that counts as outside the baseline band.
        critical_z: |z| required for the fast CRITICAL path.
        risk_weeks: Streak length required for RISK.
        critical_weeks: Streak length required at critical_z for CRITICAL.
        slow_burn_weeks: Streak length at risk_z that escalates to CRITICAL.
        min_group_size: Smallest active population a Signal may describe.
        min_data_coverage: Smallest share of the population with data.
        min_sample_size: Smallest number of underlying data points.
        recheck_delay_days: Days from intervention start to recheck.
        max_concurrency: Units evaluated at once in a weekly batch.
        unit_timeout_seconds: Per-unit limit before it is recorded as failed.
        state_warmup_weeks: How far back a run may replay to rebuild the
            sustained-weeks fold when no committed state precedes the
            evaluated week.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    baseline_window_weeks: int = Field(default=6, ge=1)
    min_baseline_weeks: int = Field(default=3, ge=1)
    info_z: float = Field(default=1.0, ge=0.0)
    risk_z: float = Field(default=2.0, gt=0.0)
    critical_z: float = Field(default=3.0, gt=0.0)
    risk_weeks: int = Field(default=2, ge=1)
    critical_weeks: int = Field(default=3, ge=1)
    slow_burn_weeks: int = Field(default=5, ge=1)
    min_group_size: int = Field(default=8, ge=1)
    min_data_coverage: float = Field(default=0.6, ge=0.0, le=1.0)
    min_sample_size: int = Field(default=0, ge=0)
    recheck_delay_days: int = Field(default=14, ge=1)
    max_concurrency: int = Field(default=8, ge=1)
    unit_timeout_seconds: float = Field(default=30.0, gt=0.0)
    state_warmup_weeks: int = Field(default=8, ge=0)

    @model_validator(mode="after")
    def _check_ordering(self) -> "DetectionConfig":
        if self.min_baseline_weeks > self.baseline_window_weeks:
            raise ValueError("min_baseline_weeks cannot exceed baseline_window_weeks.")
        if self.info_z > self.risk_z:
            raise ValueError("info_z cannot exceed risk_z.")
        if self.critical_z < self.risk_z:
            raise ValueError("critical_z cannot be below risk_z.")
        # A CRITICAL week must always carry at least the streak RISK needs.
        if self.critical_weeks < self.risk_weeks:
            raise ValueError("critical_weeks cannot be below risk_weeks.")
        if self.slow_burn_weeks < self.critical_weeks:
            raise ValueError("slow_burn_weeks cannot be below critical_weeks.")
        return self

    @classmethod
    def from_env(cls) -> "DetectionConfig":
        """Build a config from RHYTHM_* environment variables and .env.

        Unset or empty variables keep their defaults. Bad values raise
        ValidationError at startup.
        """
        return cls()
