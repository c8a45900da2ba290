"""Deviation schemas.

Deviation is what the detector reports for one evaluation week.
DeviationState is the small piece of it that must survive between weekly
runs: the direction and length of the current streak. It is persisted per
(team, metric, week) rather than held in process memory, so any run can
resume the fold from the last committed week.
"""

from datetime import date

from pydantic import BaseModel, Field


class Deviation(BaseModel):
    """The current week's distance from baseline.

    Attributes:
        current_value: The evaluated week's value.
        delta_abs: current_value - baseline.median.
        delta_pct: delta_abs as a percentage of |baseline.median|. None when
            the median is zero.
        robust_z: delta_abs / (1.4826 * mad). None when mad is zero.
        z_fallback: (current - mean) / std, used only when mad is zero.
            None when not needed or when std is also zero.
        z: The effective z-score the thresholds are applied to.
        degenerate: True when mad and std were both zero and the deviation
            was reported as zero magnitude.
        direction: Sign of the effective deviation when outside the baseline
            band: 1 above, -1 below, 0 in band.
        sustained_weeks: Consecutive weeks the same-direction deviation has
            persisted, including this one. 0 when in band.
        deviation_start_week: First week of the current streak.
        meets_risk: Derived from z and sustained_weeks, never set directly.
        meets_critical: Derived from z and sustained_weeks, never set directly.
    """

    current_value: float
    delta_abs: float
    delta_pct: float | None = None
    robust_z: float | None = None
    z_fallback: float | None = None
    z: float = 0.0
    degenerate: bool = False
    direction: int = Field(default=0, ge=-1, le=1)
    sustained_weeks: int = Field(default=0, ge=0)
    deviation_start_week: date | None = None
    meets_risk: bool = False
    meets_critical: bool = False


class DeviationState(BaseModel):
    """Committed fold state for one (org, team, metric, week).

    A week that produced no deviation (in band, insufficient baseline, or
    missing data) still commits a state with direction 0 so the following
    week knows the streak was broken.
    """

    org_id: str
    team_id: str
    metric_key: str
    week_start: date
    direction: int = Field(default=0, ge=-1, le=1)
    sustained_weeks: int = Field(default=0, ge=0)
    deviation_start_week: date | None = None
