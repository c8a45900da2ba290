"""Driver attribution.

The DriverAttributor explains a signal by ranking the sub-metrics that feed
its signal type. Each sub-metric is measured against its own baseline over
the same window, then scored:

    score = |delta_pct| * weight

where weight is the sub-metric's contribution to the composite from the
catalog. The top 3 are returned. Ties are broken by larger |delta_abs|, then
by key, so the output is fully deterministic.
"""

import logging
from dataclasses import dataclass
from datetime import date

from schemas.catalog import SubMetric
from schemas.observation import MetricObservation
from schemas.signal import Driver
from signals.baseline_builder import BaselineBuilder

logger = logging.getLogger(__name__)

MAX_DRIVERS = 3


@dataclass
class _Candidate:
    driver: Driver
    score: float


class DriverAttributor:
    """Ranks contributing sub-metrics for one (team, signal type, week).

    Sub-metrics are excluded, not scored as zero, when they cannot be
    measured: thin history, no value this week, or a zero baseline median
    (percent change is undefined).
    """

    def __init__(self, builder: BaselineBuilder | None = None) -> None:
        self._builder = builder or BaselineBuilder()

    def attribute(
        self,
        sub_metrics: list[SubMetric],
        series_by_key: dict[str, list[MetricObservation]],
        week_start: date,
    ) -> list[Driver]:
        """Return up to three drivers, highest contribution first.

        Args:
            sub_metrics: The signal type's sub-metrics from the catalog.
            series_by_key: Observations per sub-metric key, covering the
                baseline window and the evaluated week.
            week_start: The evaluated week.

        Returns:
            Up to MAX_DRIVERS Driver objects. Empty if no sub-metric could
            be measured.
        """
        candidates = []
        for sub_metric in sub_metrics:
            candidate = self._measure(sub_metric, series_by_key.get(sub_metric.key, []), week_start)
            if candidate is not None:
                candidates.append(candidate)

        candidates.sort(key=lambda c: (-c.score, -abs(c.driver.delta_abs), c.driver.key))
        return [c.driver for c in candidates[:MAX_DRIVERS]]

    # ── Private helpers ───────────────────────────────────────────────────────

    def _measure(
        self,
        sub_metric: SubMetric,
        series: list[MetricObservation],
        week_start: date,
    ) -> _Candidate | None:
        current = next((o for o in series if o.week_start == week_start and o.has_data), None)
        if current is None:
            return None

        result = self._builder.build(series, week_start)
        if not result.ok or result.baseline.median == 0:
            logger.debug("Driver '%s' excluded for week %s.", sub_metric.key, week_start)
            return None

        delta_abs = current.value - result.baseline.median
        delta_pct = delta_abs / abs(result.baseline.median) * 100
        return _Candidate(
            driver=Driver(
                key=sub_metric.key,
                label=sub_metric.label,
                value=current.value,
                delta_abs=round(delta_abs, 4),
                delta_pct=round(delta_pct, 2),
            ),
            score=abs(delta_pct) * sub_metric.weight,
        )
