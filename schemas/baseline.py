"""Baseline schemas.

A Baseline is the robust summary of a team's recent normal range for one
metric. It is embedded in every Signal so a reader can reproduce the
z-score from the stored numbers alone.
"""

from enum import Enum

from pydantic import BaseModel, Field


class Baseline(BaseModel):
    """Robust reference statistics over the trailing completed weeks.

    Attributes:
        mean: Arithmetic mean of the weeks with data.
        median: Median of the weeks with data.
        std: Population standard deviation. Always >= 0.
        mad: Median absolute deviation from the median. Always >= 0.
        p25: 25th percentile (linear interpolation).
        p75: 75th percentile (linear interpolation).
        confidence: weeks_with_data / window_weeks, clamped to [0, 1].
        window_weeks: Length of the baseline window in weeks.
        weeks_with_data: How many weeks in the window had usable data.
    """

    mean: float
    median: float
    std: float = Field(ge=0.0)
    mad: float = Field(ge=0.0)
    p25: float
    p75: float
    confidence: float = Field(ge=0.0, le=1.0)
    window_weeks: int = Field(gt=0)
    weeks_with_data: int = Field(ge=0)

    @property
    def degenerate(self) -> bool:
        """True when neither MAD nor std can scale a deviation."""
        return self.mad == 0 and self.std == 0


class BaselineStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT = "insufficient"


class BaselineResult(BaseModel):
    """Outcome of one Baseline Builder call.

    Insufficient history is an expected, recoverable condition, so the
    builder returns this sentinel instead of raising. The pipeline checks
    status and short-circuits the unit when it is INSUFFICIENT.
    """

    status: BaselineStatus
    baseline: Baseline | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is BaselineStatus.OK
