"""Signal pipeline — evaluates one (team, signal type) for one week.

This is the only class the runtime's unit workers call per week. It:
1. Finds the evaluated week's headline observation
2. Builds the baseline from the preceding completed weeks
3. Computes the deviation and advances the sustained-weeks streak
4. Runs the privacy guardrail
5. Scores confidence, attributes drivers, classifies severity
6. Assembles the Signal (unsaved)

Every path returns a WeekEvaluation with the DeviationState to commit, so
the caller can keep the weekly fold correct even when no signal is emitted.
The pipeline itself reads no store and writes nothing.
"""

import logging
from dataclasses import dataclass
from datetime import date

from aggregation.drivers import DriverAttributor
from core.config import DetectionConfig
from judge.guardrail import PrivacyGuardrail
from schemas.catalog import SignalTypeDefinition
from schemas.deviation import Deviation, DeviationState
from schemas.observation import MetricObservation
from schemas.result import UnitStatus
from schemas.signal import Severity, Signal
from signals.baseline_builder import BaselineBuilder
from signals.confidence import ConfidenceScorer
from signals.deviation_detector import DeviationDetector
from signals.emitter import SignalEmitter
from signals.polarity import is_adverse
from signals.severity import classify_severity

logger = logging.getLogger(__name__)


@dataclass
class WeekEvaluation:
    """Result of evaluating one unit for one week.

    A dataclass rather than a Pydantic model because it never leaves the
    runtime. The runtime commits state, persists signal if present, and
    records an outcome built from status and reason.

    Attributes:
        status: How the week ended. EMITTED means a signal was assembled;
            the runtime refines it to UPDATED or UNCHANGED after the upsert.
        state: DeviationState to commit for the week.
        signal: The assembled, unsaved Signal when status is EMITTED.
        deviation: The detector output, when a baseline existed.
        reason: Detail for non-emitting outcomes.
    """

    status: UnitStatus
    state: DeviationState
    signal: Signal | None = None
    deviation: Deviation | None = None
    reason: str | None = None


class SignalPipeline:
    """Runs the per-week detection chain for one unit."""

    def __init__(
        self,
        config: DetectionConfig | None = None,
        emitter: SignalEmitter | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self.builder = BaselineBuilder(self.config)
        self.detector = DeviationDetector(self.config)
        self.scorer = ConfidenceScorer()
        self.attributor = DriverAttributor(self.builder)
        self.guardrail = PrivacyGuardrail(self.config)
        self.emitter = emitter or SignalEmitter()

    def evaluate_week(
        self,
        org_id: str,
        team_id: str,
        definition: SignalTypeDefinition,
        week_start: date,
        series: list[MetricObservation],
        sub_series: dict[str, list[MetricObservation]] | None = None,
        previous_state: DeviationState | None = None,
    ) -> WeekEvaluation:
        """Evaluate week_start for one team and signal type.

        Args:
            org_id: Organisation of the team.
            team_id: Team being evaluated.
            definition: Catalog entry for the signal type.
            week_start: The evaluated week.
            series: Headline metric observations covering at least the
                baseline window and week_start.
            sub_series: Observations per sub-metric key, for drivers.
            previous_state: Committed state of the preceding week.

        Returns:
            WeekEvaluation carrying the state to commit and, when the week
            qualifies, an assembled Signal.
        """
        metric_key = definition.metric_key
        reset = self.detector.reset_state(org_id, team_id, metric_key, week_start)

        current = next((o for o in series if o.week_start == week_start), None)
        if current is None or not current.has_data:
            return WeekEvaluation(
                status=UnitStatus.MISSING_CURRENT,
                state=reset,
                reason=f"No {metric_key} data for week {week_start}.",
            )

        baseline_result = self.builder.build(series, week_start)
        if not baseline_result.ok:
            return WeekEvaluation(
                status=UnitStatus.INSUFFICIENT_BASELINE,
                state=reset,
                reason=baseline_result.reason,
            )
        baseline = baseline_result.baseline

        deviation = self.detector.detect(current.value, baseline, week_start, previous_state)
        state = self.detector.next_state(org_id, team_id, metric_key, week_start, deviation)

        verdict = self.guardrail.check(current)
        if not verdict.passed:
            logger.debug(
                "Suppressed %s for team '%s' week %s: %s",
                definition.signal_type, team_id, week_start, verdict.reason,
            )
            return WeekEvaluation(
                status=UnitStatus.SUPPRESSED,
                state=state,
                deviation=deviation,
                reason=verdict.reason,
            )

        if abs(deviation.z) < self.config.info_z:
            return WeekEvaluation(
                status=UnitStatus.NO_DEVIATION,
                state=state,
                deviation=deviation,
                reason=f"|z| {abs(deviation.z):.2f} below {self.config.info_z:.2f}.",
            )

        factors = self.scorer.factors_for(current, baseline.confidence, deviation)
        confidence = self.scorer.score(factors)
        drivers = self.attributor.attribute(definition.sub_metrics, sub_series or {}, week_start)

        adverse = is_adverse(definition.signal_type, 1 if deviation.z > 0 else -1)
        if adverse:
            severity = classify_severity(deviation.meets_risk, deviation.meets_critical, confidence)
        else:
            severity = Severity.INFO

        signal = self.emitter.assemble(
            org_id=org_id,
            definition=definition,
            observation=current,
            baseline=baseline,
            deviation=deviation,
            factors=factors,
            confidence=confidence,
            severity=severity,
            drivers=drivers,
            adverse=adverse,
        )
        return WeekEvaluation(status=UnitStatus.EMITTED, state=state, signal=signal, deviation=deviation)
