"""Baseline Builder.

Summarises the trailing completed weeks before an evaluation week into a
robust reference: mean, median, population std, MAD, and the 25th/75th
percentiles. The evaluation week is never part of its own baseline.
"""

import logging
import math
import statistics
from collections.abc import Iterable
from datetime import date

from core.config import DetectionConfig
from schemas.baseline import Baseline, BaselineResult, BaselineStatus
from schemas.observation import MetricObservation
from utils.weeks import previous_week

logger = logging.getLogger(__name__)


def percentile(sorted_values: list[float], pct: float) -> float:
    """Linear-interpolated percentile of an ascending list.

    Uses index = pct / 100 * (n - 1), interpolating between the two
    neighbouring values. Expects a non-empty list.
    """
    if len(sorted_values) == 1:
        return sorted_values[0]
    index = pct / 100 * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_values[lower]
    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def median_absolute_deviation(values: list[float], median: float) -> float:
    return statistics.median(abs(v - median) for v in values)


class BaselineBuilder:
    """Builds a Baseline from a series of weekly observations.

    The builder only looks at the window_weeks weeks immediately preceding
    the evaluation week. Observations outside that window, including the
    evaluation week itself, are ignored even if the provider sent them.

    Attributes:
        window_weeks: Length of the baseline window.
        min_weeks: Weeks with data required for a usable baseline.
    """

    def __init__(self, config: DetectionConfig | None = None) -> None:
        config = config or DetectionConfig()
        self.window_weeks = config.baseline_window_weeks
        self.min_weeks = config.min_baseline_weeks

    def window_for(self, evaluation_week: date) -> list[date]:
        """Return the baseline week starts for evaluation_week, ascending."""
        return [previous_week(evaluation_week, n) for n in range(self.window_weeks, 0, -1)]

    def build(
        self,
        series: Iterable[MetricObservation],
        evaluation_week: date,
    ) -> BaselineResult:
        """Compute the baseline for evaluation_week.

        Args:
            series: Observations for one (team, metric), in any order.
                Missing weeks may be absent or present with value=None.
            evaluation_week: The week being evaluated.

        Returns:
            BaselineResult with status OK and a Baseline, or status
            INSUFFICIENT when fewer than min_weeks window weeks had data.
        """
        window = set(self.window_for(evaluation_week))
        values = [
            obs.value
            for obs in sorted(series, key=lambda o: o.week_start)
            if obs.week_start in window and obs.has_data
        ]

        if len(values) < self.min_weeks:
            reason = (
                f"{len(values)} of {self.window_weeks} baseline weeks have data "
                f"(need {self.min_weeks})."
            )
            logger.debug("Insufficient baseline for week %s: %s", evaluation_week, reason)
            return BaselineResult(status=BaselineStatus.INSUFFICIENT, reason=reason)

        return BaselineResult(status=BaselineStatus.OK, baseline=self.summarise(values))

    def summarise(self, values: list[float]) -> Baseline:
        """Compute the Baseline statistics for a non-empty list of values."""
        ordered = sorted(values)
        median = statistics.median(ordered)
        return Baseline(
            mean=statistics.fmean(ordered),
            median=median,
            std=statistics.pstdev(ordered),
            mad=median_absolute_deviation(ordered, median),
            p25=percentile(ordered, 25),
            p75=percentile(ordered, 75),
            confidence=min(max(len(ordered) / self.window_weeks, 0.0), 1.0),
            window_weeks=self.window_weeks,
            weeks_with_data=len(ordered),
        )
