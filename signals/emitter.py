"""Signal Emitter.

Assembles the pieces computed upstream into a Signal and persists it through
the store's natural-key upsert. Consequence text, time-to-impact, and
recommended actions come from the signal type catalog and are attached only
when the drift runs in the adverse direction for that type. A favourable
drift is still reported, with neutral text and nothing to act on.
"""

import logging

from core.store import InMemoryStore, UpsertOutcome
from schemas.baseline import Baseline
from schemas.catalog import SignalTypeDefinition
from schemas.deviation import Deviation
from schemas.observation import MetricObservation
from schemas.signal import ConfidenceFactors, DataQuality, Driver, Severity, Signal

logger = logging.getLogger(__name__)


class SignalEmitter:
    """Builds Signal records and writes them idempotently."""

    def __init__(self, store: InMemoryStore | None = None) -> None:
        self._store = store

    def assemble(
        self,
        org_id: str,
        definition: SignalTypeDefinition,
        observation: MetricObservation,
        baseline: Baseline,
        deviation: Deviation,
        factors: ConfidenceFactors,
        confidence: float,
        severity: Severity,
        drivers: list[Driver],
        adverse: bool,
    ) -> Signal:
        """Build the Signal for one team, signal type, and week.

        Args:
            org_id: Organisation of the team.
            definition: Catalog entry for the signal type.
            observation: Headline metric observation for the evaluated week.
                Must have passed the privacy guardrail.
            baseline: Baseline the deviation was measured against.
            deviation: The detector's output for the week.
            factors: Confidence factors behind confidence.
            confidence: Composite confidence.
            severity: Classified severity.
            drivers: Ranked drivers, at most three.
            adverse: True if the drift is in the harmful direction for this
                signal type.

        Returns:
            An unsaved Signal. Pass it to persist() to write it.
        """
        if adverse:
            consequence = definition.consequences[severity.value]
            time_to_impact = definition.time_to_impact.get(severity.value)
            actions = list(definition.actions)
        else:
            consequence = definition.neutral_text
            time_to_impact = None
            actions = []

        return Signal(
            org_id=org_id,
            team_id=observation.team_id,
            week_start=observation.week_start,
            signal_type=definition.signal_type,
            metric_key=definition.metric_key,
            severity=severity,
            confidence=confidence,
            confidence_factors=factors,
            data_quality=DataQuality(
                active_population=observation.active_population,
                active_with_data=observation.active_with_data,
                data_coverage=round(observation.data_coverage, 4),
                sample_size=observation.sample_size,
                sources=sorted(observation.sources),
                weeks_with_data=baseline.weeks_with_data,
            ),
            current_value=observation.value,
            baseline=baseline,
            deviation=deviation,
            drivers=drivers,
            consequence_text=consequence,
            time_to_impact=time_to_impact,
            recommended_actions=actions,
        )

    def persist(self, signal: Signal) -> tuple[Signal, UpsertOutcome]:
        """Write the signal through the store's natural-key upsert.

        Raises:
            RuntimeError: If the emitter was built without a store.
        """
        if self._store is None:
            raise RuntimeError("SignalEmitter has no store to persist into.")

        stored, outcome = self._store.upsert_signal(signal)
        if outcome is UpsertOutcome.CREATED:
            logger.info(
                "Emitted %s %s for team '%s' week %s (z=%.2f, %d weeks, confidence %.2f).",
                stored.severity.value,
                stored.signal_type,
                stored.team_id,
                stored.week_start,
                stored.deviation.z,
                stored.deviation.sustained_weeks,
                stored.confidence,
            )
        else:
            logger.debug("Signal %s %s on rerun.", stored.id, outcome.value)
        return stored, outcome
