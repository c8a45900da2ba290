"""Deviation Detector.

Measures how far the current week sits from its baseline and folds the
result into the sustained-weeks streak carried over from the previous week.

The z-score ladder:
    1. robust z = delta_abs / (1.4826 * MAD)          when MAD > 0
    2. fallback z = (current - mean) / std             when MAD == 0, std > 0
    3. zero magnitude, degenerate=True                 when both are 0

1.4826 makes MAD a consistent estimator of the standard deviation for
normally distributed data, so robust z and plain z share a scale.

The streak is a sequential fold: week N reads the committed state for week
N-1 and produces the state for week N. The detector holds no state itself.
"""

from datetime import date

from core.config import DetectionConfig
from schemas.baseline import Baseline
from schemas.deviation import Deviation, DeviationState
from utils.weeks import previous_week

ROBUST_Z_SCALE = 1.4826


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


class DeviationDetector:
    """Computes deviations and advances the sustained-weeks streak.

    Attributes:
        risk_z: |z| at or above which a week is outside the baseline band.
        critical_z: |z| required for the fast CRITICAL path.
        risk_weeks: Streak length required for RISK.
        critical_weeks: Streak length required at critical_z for CRITICAL.
        slow_burn_weeks: Streak length at risk_z that escalates to CRITICAL.
    """

    def __init__(self, config: DetectionConfig | None = None) -> None:
        config = config or DetectionConfig()
        self.risk_z = config.risk_z
        self.critical_z = config.critical_z
        self.risk_weeks = config.risk_weeks
        self.critical_weeks = config.critical_weeks
        self.slow_burn_weeks = config.slow_burn_weeks

    def detect(
        self,
        current_value: float,
        baseline: Baseline,
        week_start: date,
        previous_state: DeviationState | None = None,
    ) -> Deviation:
        """Compare current_value to baseline and extend the streak.

        Args:
            current_value: The evaluated week's value.
            baseline: Baseline for the evaluated week.
            week_start: The evaluated week.
            previous_state: Committed state of the prior week, if any. A
                state for any week other than the immediately preceding one
                is treated as no state: a gap breaks the streak.

        Returns:
            Deviation with z, direction, streak, and the derived
            meets_risk / meets_critical flags.
        """
        delta_abs = current_value - baseline.median
        delta_pct = delta_abs / abs(baseline.median) * 100 if baseline.median != 0 else None

        robust_z = None
        z_fallback = None
        degenerate = False
        if baseline.mad > 0:
            robust_z = delta_abs / (ROBUST_Z_SCALE * baseline.mad)
            z = robust_z
        elif baseline.std > 0:
            z_fallback = (current_value - baseline.mean) / baseline.std
            z = z_fallback
        else:
            degenerate = True
            z = 0.0

        direction = _sign(z) if abs(z) >= self.risk_z else 0
        sustained, start = self._advance_streak(direction, week_start, previous_state)

        return Deviation(
            current_value=current_value,
            delta_abs=delta_abs,
            delta_pct=delta_pct,
            robust_z=robust_z,
            z_fallback=z_fallback,
            z=z,
            degenerate=degenerate,
            direction=direction,
            sustained_weeks=sustained,
            deviation_start_week=start,
            meets_risk=self.meets_risk(z, sustained),
            meets_critical=self.meets_critical(z, sustained),
        )

    def meets_risk(self, z: float, sustained_weeks: int) -> bool:
        return abs(z) >= self.risk_z and sustained_weeks >= self.risk_weeks

    def meets_critical(self, z: float, sustained_weeks: int) -> bool:
        fast = abs(z) >= self.critical_z and sustained_weeks >= self.critical_weeks
        slow_burn = abs(z) >= self.risk_z and sustained_weeks >= self.slow_burn_weeks
        return fast or slow_burn

    def next_state(
        self,
        org_id: str,
        team_id: str,
        metric_key: str,
        week_start: date,
        deviation: Deviation,
    ) -> DeviationState:
        """Build the state to commit for week_start from its Deviation."""
        return DeviationState(
            org_id=org_id,
            team_id=team_id,
            metric_key=metric_key,
            week_start=week_start,
            direction=deviation.direction,
            sustained_weeks=deviation.sustained_weeks,
            deviation_start_week=deviation.deviation_start_week,
        )

    @staticmethod
    def reset_state(org_id: str, team_id: str, metric_key: str, week_start: date) -> DeviationState:
        """State for a week with no usable deviation: the streak is broken."""
        return DeviationState(
            org_id=org_id,
            team_id=team_id,
            metric_key=metric_key,
            week_start=week_start,
        )

    # ── Private helpers ───────────────────────────────────────────────────────

    def _advance_streak(
        self,
        direction: int,
        week_start: date,
        previous_state: DeviationState | None,
    ) -> tuple[int, date | None]:
        if direction == 0:
            return 0, None

        contiguous = (
            previous_state is not None
            and previous_state.week_start == previous_week(week_start)
        )
        if contiguous and previous_state.direction == direction and previous_state.sustained_weeks > 0:
            start = previous_state.deviation_start_week or week_start
            return previous_state.sustained_weeks + 1, start

        return 1, week_start
