"""Intervention commands.

InterventionService is the write side people use: log an action taken on a
Signal, acknowledge or annotate the measured outcome, and close
interventions that were dropped. Every write to an intervention goes through
the store's compare-and-set, so these commands cannot clobber a concurrent
recheck.
"""

import logging
from datetime import date, datetime, timedelta, timezone

from core.config import DetectionConfig
from core.errors import InvalidTransition, RecordNotFound
from core.store import InMemoryStore
from outcomes.tracker import compute_outcome, record_signal_outcome
from schemas.intervention import Intervention, InterventionStatus, RECHECKABLE_STATUSES
from schemas.signal import OutcomeRating, SignalStatus

logger = logging.getLogger(__name__)


class InterventionService:
    """Creates and updates interventions on behalf of people.

    Attributes:
        recheck_delay_days: Days from start to recheck for new interventions.
    """

    def __init__(self, store: InMemoryStore, config: DetectionConfig | None = None) -> None:
        self._store = store
        self.recheck_delay_days = (config or DetectionConfig()).recheck_delay_days

    def create_from_signal(
        self,
        signal_id: str,
        action_taken: str,
        metric_before: float | None = None,
        action_id: str | None = None,
        created_by: str | None = None,
        start_date: date | None = None,
    ) -> Intervention:
        """Log an action taken on a signal.

        A signal has at most one selected intervention. Acting on it again
        abandons the previous still-open intervention and selects the new one.

        Args:
            signal_id: The signal acted on.
            action_taken: What the team did, in their words.
            metric_before: Metric value at the start. Defaults to the
                signal's current_value.
            action_id: Catalog action ID, when a recommended action was used.
            created_by: Who logged it.
            start_date: When the action started. Defaults to today (UTC).

        Returns:
            The stored intervention, status active.

        Raises:
            RecordNotFound: If the signal does not exist.
        """
        signal = self._store.get_signal(signal_id)
        if signal is None:
            raise RecordNotFound(f"Signal '{signal_id}' not found.")

        start = start_date or datetime.now(timezone.utc).date()

        if signal.selected_intervention_id:
            previous = self._store.get_intervention(signal.selected_intervention_id)
            if previous is not None and previous.status in RECHECKABLE_STATUSES:
                self._transition(previous, InterventionStatus.ABANDONED)
                logger.info("Intervention %s abandoned: signal %s re-acted on.", previous.id, signal_id)

        intervention = self._store.add_intervention(Intervention(
            signal_id=signal.id,
            org_id=signal.org_id,
            team_id=signal.team_id,
            signal_type=signal.signal_type,
            metric_key=signal.metric_key,
            action_taken=action_taken,
            action_id=action_id,
            metric_before=signal.current_value if metric_before is None else metric_before,
            start_date=start,
            recheck_date=start + timedelta(days=self.recheck_delay_days),
            created_by=created_by,
        ))

        changes = {"selected_intervention_id": intervention.id, "outcome": None}
        if signal.status in (SignalStatus.OPEN, SignalStatus.ACKNOWLEDGED):
            changes["status"] = SignalStatus.IN_PROGRESS
        self._store.update_signal(signal.id, **changes)

        logger.info(
            "Intervention %s created on signal %s; recheck on %s.",
            intervention.id, signal.id, intervention.recheck_date,
        )
        return intervention

    def acknowledge(
        self,
        intervention_id: str,
        user_notes: str,
        user_assessment: OutcomeRating | None = None,
        metric_after: float | None = None,
        acknowledged_by: str | None = None,
    ) -> Intervention:
        """Record a person's notes and assessment of an outcome.

        The measured outcome_delta is never overwritten. When no outcome
        exists yet and metric_after is supplied, this writes a manual outcome
        (auto_computed=False), which is how a person resolves an intervention
        the tracker could not compute. user_assessment overrides the rating
        shown on the signal; the numbers stay as measured.

        Raises:
            RecordNotFound: If the intervention does not exist.
            InvalidTransition: If metric_after is given for an abandoned or
                ignored intervention.
            MissingBaselineError: If a manual outcome is requested but
                metric_before is 0 or absent.
        """
        intervention = self._require(intervention_id)
        changes = {
            "user_notes": user_notes,
            "user_assessment": user_assessment,
            "acknowledged_by": acknowledged_by,
            "acknowledged_at": datetime.now(timezone.utc),
        }

        outcome = intervention.outcome_delta
        if outcome is None and metric_after is not None:
            if intervention.status not in RECHECKABLE_STATUSES:
                raise InvalidTransition(
                    f"Intervention '{intervention_id}' is {intervention.status.value}; "
                    "no outcome can be recorded."
                )
            outcome = compute_outcome(
                intervention.signal_type,
                intervention.metric_before,
                metric_after,
                auto_computed=False,
            )
            changes.update({
                "outcome_delta": outcome,
                "status": InterventionStatus.COMPLETED,
                "last_error": None,
            })

        updated = self._store.compare_and_set_intervention(intervention.id, intervention.version, changes)
        if outcome is not None:
            record_signal_outcome(self._store, updated, outcome, rating=user_assessment, notes=user_notes)
        return updated

    def abandon(self, intervention_id: str) -> Intervention:
        """Mark an intervention as dropped before its recheck."""
        return self._transition(self._require(intervention_id), InterventionStatus.ABANDONED)

    def ignore(self, intervention_id: str) -> Intervention:
        """Mark an intervention as deliberately not tracked."""
        return self._transition(self._require(intervention_id), InterventionStatus.IGNORED)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _require(self, intervention_id: str) -> Intervention:
        intervention = self._store.get_intervention(intervention_id)
        if intervention is None:
            raise RecordNotFound(f"Intervention '{intervention_id}' not found.")
        return intervention

    def _transition(self, intervention: Intervention, status: InterventionStatus) -> Intervention:
        if intervention.status is status:
            return intervention
        if intervention.status not in RECHECKABLE_STATUSES:
            raise InvalidTransition(
                f"Intervention '{intervention.id}' is {intervention.status.value} "
                f"and cannot become {status.value}."
            )
        return self._store.compare_and_set_intervention(
            intervention.id, intervention.version, {"status": status},
        )
