"""Intervention Outcome Tracker.

The delayed half of the loop. Once an intervention's recheck date arrives,
the tracker reads the team's metric again, computes the percent change from
metric_before, and asks the polarity table whether that change is an
improvement for the signal type.

The outcome is written exactly once. A recheck of an intervention that
already has an outcome returns the stored outcome untouched, and concurrent
rechecks of the same intervention race on a compare-and-set so only one
write wins.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from core.errors import (
    ConcurrentUpdateError,
    InvalidTransition,
    MissingBaselineError,
    RecordNotFound,
    StaleRecheckRead,
)
from core.store import InMemoryStore
from integrations.providers import MetricSeriesProvider
from judge.guardrail import PrivacyGuardrail
from schemas.intervention import Intervention, InterventionStatus, OutcomeDelta, RECHECKABLE_STATUSES
from schemas.signal import OutcomeRating, SignalOutcome
from signals.polarity import is_improvement
from utils.weeks import previous_week, week_start_of

logger = logging.getLogger(__name__)

# How many completed weeks back from "now" the tracker looks for a reading.
RECHECK_LOOKBACK_WEEKS = 8


def compute_outcome(
    signal_type: str,
    metric_before: float | None,
    metric_after: float,
    auto_computed: bool,
    computed_at: datetime | None = None,
) -> OutcomeDelta:
    """Compute the polarity-aware outcome of an intervention.

    percent_change = (after - before) / before * 100, rounded to 1 place for
    storage. improved is judged on the unrounded change.

    Raises:
        MissingBaselineError: If metric_before is None or 0.
        UnknownSignalType: If signal_type has no polarity entry.
    """
    if not metric_before:
        raise MissingBaselineError(
            f"metric_before is {metric_before!r}; percent change is undefined."
        )
    change = (metric_after - metric_before) / metric_before * 100
    return OutcomeDelta(
        metric_before=metric_before,
        metric_after=metric_after,
        percent_change=round(change, 1),
        improved=is_improvement(signal_type, change),
        auto_computed=auto_computed,
        computed_at=computed_at or datetime.now(timezone.utc),
    )


def rating_for(outcome: OutcomeDelta) -> OutcomeRating:
    return OutcomeRating.WORKED if outcome.improved else OutcomeRating.DID_NOT_WORK


@dataclass
class RecheckReport:
    """Summary of one run_due() sweep, as intervention IDs per result."""

    completed: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class OutcomeTracker:
    """Rechecks due interventions and records their outcomes.

    Attributes:
        guardrail: Applied to the recheck reading. A week the guardrail
            would suppress is not a usable reading.
    """

    def __init__(
        self,
        store: InMemoryStore,
        provider: MetricSeriesProvider,
        guardrail: PrivacyGuardrail | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self.guardrail = guardrail or PrivacyGuardrail()

    def due(self, now: datetime | None = None) -> list[Intervention]:
        """Return interventions whose recheck date has arrived."""
        today = (now or datetime.now(timezone.utc)).date()
        return [
            i for i in self._store.list_interventions()
            if i.is_due(today)
        ]

    def mark_due(self, now: datetime | None = None) -> list[Intervention]:
        """Move due active interventions to pending-recheck.

        Returns:
            Every due intervention, as stored after marking.
        """
        marked = []
        for intervention in self.due(now):
            if intervention.status is InterventionStatus.ACTIVE:
                try:
                    intervention = self._store.compare_and_set_intervention(
                        intervention.id,
                        intervention.version,
                        {"status": InterventionStatus.PENDING_RECHECK},
                    )
                except ConcurrentUpdateError:
                    logger.debug("Intervention %s changed while marking due.", intervention.id)
                    intervention = self._require(intervention.id)
            marked.append(intervention)
        return marked

    async def recheck(self, intervention_id: str, now: datetime | None = None) -> OutcomeDelta:
        """Measure one intervention's outcome.

        Args:
            intervention_id: The intervention to recheck.
            now: Current time. Defaults to the wall clock.

        Returns:
            The outcome. If one was already stored, that outcome, unchanged.

        Raises:
            RecordNotFound: If the intervention does not exist.
            InvalidTransition: If it is abandoned, ignored, or not yet due.
            MissingBaselineError: If metric_before is 0 or absent. The
                intervention is left pending-recheck for manual entry.
            StaleRecheckRead: If no completed week after the action has
                usable data yet. The intervention is left pending-recheck.
        """
        now = now or datetime.now(timezone.utc)
        intervention = self._require(intervention_id)

        if intervention.outcome_delta is not None:
            logger.debug("Intervention %s already has an outcome. No-op.", intervention_id)
            return intervention.outcome_delta

        if intervention.status not in RECHECKABLE_STATUSES:
            raise InvalidTransition(
                f"Intervention '{intervention_id}' is {intervention.status.value} and cannot be rechecked."
            )
        if intervention.recheck_date > now.date():
            raise InvalidTransition(
                f"Intervention '{intervention_id}' is not due until {intervention.recheck_date}."
            )

        if not intervention.metric_before:
            error = MissingBaselineError(
                f"Intervention '{intervention_id}' has metric_before={intervention.metric_before!r}."
            )
            self._leave_pending(intervention, str(error))
            raise error

        metric_after = await self._read_after(intervention, now)
        if metric_after is None:
            error = StaleRecheckRead(
                f"No usable {intervention.metric_key} data for team '{intervention.team_id}' "
                f"after {intervention.start_date}."
            )
            self._leave_pending(intervention, str(error))
            raise error

        outcome = compute_outcome(
            intervention.signal_type,
            intervention.metric_before,
            metric_after,
            auto_computed=True,
            computed_at=now,
        )
        return self._write_outcome(intervention, outcome)

    async def run_due(self, now: datetime | None = None) -> RecheckReport:
        """Recheck every due intervention, isolating failures.

        Due interventions are marked pending-recheck first, so one that cannot
        be measured yet is visibly awaiting data.

        Recoverable conditions leave the intervention pending and are
        reported as pending. Anything else is logged and reported as failed;
        the sweep carries on with the next intervention.
        """
        report = RecheckReport()
        for intervention in self.mark_due(now):
            try:
                await self.recheck(intervention.id, now)
                report.completed.append(intervention.id)
            except (MissingBaselineError, StaleRecheckRead) as exc:
                logger.warning("Recheck of %s left pending: %s", intervention.id, exc)
                report.pending.append(intervention.id)
            except Exception as exc:
                logger.error("Recheck of %s failed. Error: %s", intervention.id, exc)
                report.failed.append(intervention.id)

        logger.info(
            "Recheck sweep: %d completed, %d pending, %d failed.",
            len(report.completed), len(report.pending), len(report.failed),
        )
        return report

    # ── Private helpers ───────────────────────────────────────────────────────

    def _require(self, intervention_id: str) -> Intervention:
        intervention = self._store.get_intervention(intervention_id)
        if intervention is None:
            raise RecordNotFound(f"Intervention '{intervention_id}' not found.")
        return intervention

    async def _read_after(self, intervention: Intervention, now: datetime) -> float | None:
        """Return the latest usable reading from a completed week after the action.

        The action week itself mixes before and after, so readings start the
        week after it. The current week is incomplete and never used.
        """
        last_completed = previous_week(week_start_of(now))
        action_week = week_start_of(intervention.start_date)
        if last_completed <= action_week:
            return None

        series = await self._provider.get_series(
            intervention.team_id,
            intervention.metric_key,
            last_completed,
            RECHECK_LOOKBACK_WEEKS,
        )
        for observation in reversed(series):
            if observation.week_start <= action_week:
                break
            if observation.has_data and self.guardrail.check(observation).passed:
                return observation.value
        return None

    def _leave_pending(self, intervention: Intervention, reason: str) -> None:
        if intervention.status is InterventionStatus.PENDING_RECHECK and intervention.last_error == reason:
            return
        try:
            self._store.compare_and_set_intervention(
                intervention.id,
                intervention.version,
                {"status": InterventionStatus.PENDING_RECHECK, "last_error": reason},
            )
        except ConcurrentUpdateError:
            logger.debug("Intervention %s changed while marking pending.", intervention.id)

    def _write_outcome(self, intervention: Intervention, outcome: OutcomeDelta) -> OutcomeDelta:
        try:
            self._store.compare_and_set_intervention(
                intervention.id,
                intervention.version,
                {
                    "outcome_delta": outcome,
                    "status": InterventionStatus.COMPLETED,
                    "last_error": None,
                },
            )
        except ConcurrentUpdateError:
            latest = self._require(intervention.id)
            if latest.outcome_delta is not None:
                logger.info("Intervention %s was rechecked concurrently. Using stored outcome.", intervention.id)
                return latest.outcome_delta
            raise

        logger.info(
            "Intervention %s outcome: %+.1f%% (%s).",
            intervention.id,
            outcome.percent_change,
            "improved" if outcome.improved else "not improved",
        )
        record_signal_outcome(self._store, intervention, outcome)
        return outcome


def record_signal_outcome(
    store: InMemoryStore,
    intervention: Intervention,
    outcome: OutcomeDelta,
    rating: OutcomeRating | None = None,
    notes: str | None = None,
) -> None:
    """Copy an intervention outcome onto its signal, if still selected."""
    signal = store.get_signal(intervention.signal_id)
    if signal is None or signal.selected_intervention_id != intervention.id:
        return
    store.update_signal(
        signal.id,
        outcome=SignalOutcome(
            rating=rating or rating_for(outcome),
            intervention_id=intervention.id,
            percent_change=outcome.percent_change,
            notes=notes,
        ),
    )


def as_of(day: date) -> datetime:
    """Midday UTC on day, for callers that think in dates."""
    return datetime(day.year, day.month, day.day, 12, tzinfo=timezone.utc)
