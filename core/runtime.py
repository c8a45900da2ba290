"""Detection runtime — the top-level weekly batch orchestrator.

DetectionRuntime is the single entry point for detection. Callers construct
it once with a series provider and a store, then call run_week() on the
weekly cadence or backfill() to reprocess a range. Each call is independent:
fresh run memory, fresh units, its own BatchResult.

Two explicit passes:
    outer — ParallelExecutor maps over (team, signal type) units
            concurrently. Units share nothing but the store.
    inner — inside a unit, weeks are folded strictly in order. Week N reads
            the DeviationState committed for week N-1 and commits its own.

When the week before the requested range has no committed state, the unit
first replays up to state_warmup_weeks earlier weeks (committing state, never
emitting) so the sustained-weeks streak is correct from the first requested
week.
"""

import asyncio
import logging
from datetime import date, datetime, timezone

from core.config import DetectionConfig
from core.executor import DetectionUnit, ParallelExecutor
from core.memory import RunMemory
from core.registry import SignalTypeRegistry, load_default_registry
from core.store import InMemoryStore, UpsertOutcome
from integrations.providers import MetricSeriesProvider
from schemas.deviation import DeviationState
from schemas.result import BatchResult, UnitOutcome, UnitStatus
from signals.emitter import SignalEmitter
from signals.signal_pipeline import SignalPipeline, WeekEvaluation
from utils.weeks import next_week, previous_week, week_range, week_start_of

logger = logging.getLogger(__name__)

_STATUS_FOR_UPSERT = {
    UpsertOutcome.CREATED: UnitStatus.EMITTED,
    UpsertOutcome.UPDATED: UnitStatus.UPDATED,
    UpsertOutcome.UNCHANGED: UnitStatus.UNCHANGED,
}


class DetectionRuntime:
    """Orchestrates weekly detection across all teams and signal types.

    Attributes:
        config: Tunables shared by every component.
        store: Where signals, states, and the audit trail are written.
        registry: Signal types evaluated for every team.
    """

    def __init__(
        self,
        provider: MetricSeriesProvider,
        store: InMemoryStore | None = None,
        config: DetectionConfig | None = None,
        registry: SignalTypeRegistry | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self.store = store or InMemoryStore()
        self.registry = registry or load_default_registry()
        self._provider = provider
        self._emitter = SignalEmitter(self.store)
        self._pipeline = SignalPipeline(self.config, self._emitter)
        self._executor = ParallelExecutor(
            timeout_seconds=self.config.unit_timeout_seconds,
            max_concurrency=self.config.max_concurrency,
        )

    async def run_week(
        self,
        org_id: str,
        week_start: date,
        team_ids: list[str] | None = None,
        signal_types: list[str] | None = None,
        event_queue: asyncio.Queue | None = None,
    ) -> BatchResult:
        """Evaluate one week for every team and signal type of an org.

        Args:
            org_id: Organisation to evaluate.
            week_start: Week to evaluate. Normalised to its Monday.
            team_ids: Teams to evaluate. Defaults to the provider's team list.
            signal_types: Signal types to evaluate. Defaults to all registered.
            event_queue: Optional queue for PipelineEvents.

        Returns:
            BatchResult with one outcome per (team, signal type).

        Raises:
            ProviderUnavailable: If the team list cannot be fetched.
            UnknownSignalType: If signal_types names an unregistered type.
        """
        week = week_start_of(week_start)
        return await self._run(org_id, [week], team_ids, signal_types, event_queue)

    async def backfill(
        self,
        org_id: str,
        from_week: date,
        to_week: date,
        team_ids: list[str] | None = None,
        signal_types: list[str] | None = None,
        event_queue: asyncio.Queue | None = None,
    ) -> BatchResult:
        """Evaluate every week from from_week to to_week inclusive.

        Units still run in parallel; each unit walks the range in order.

        Raises:
            ValueError: If from_week is after to_week.
        """
        weeks = week_range(from_week, to_week)
        if not weeks:
            raise ValueError(f"Empty backfill range {from_week} to {to_week}.")
        return await self._run(org_id, weeks, team_ids, signal_types, event_queue)

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _run(
        self,
        org_id: str,
        weeks: list[date],
        team_ids: list[str] | None,
        signal_types: list[str] | None,
        event_queue: asyncio.Queue | None,
    ) -> BatchResult:
        started_at = datetime.now(timezone.utc)

        if team_ids is None:
            team_ids = await self._provider.list_teams(org_id)
        if signal_types is None:
            definitions = self.registry.get_all()
        else:
            definitions = [self.registry.require(t) for t in signal_types]

        logger.info(
            "Starting run for org '%s', weeks %s to %s: %d teams x %d signal types.",
            org_id, weeks[0], weeks[-1], len(team_ids), len(definitions),
        )

        memory = RunMemory()
        units = [
            DetectionUnit(org_id=org_id, team_id=team_id, definition=definition, weeks=list(weeks))
            for team_id in team_ids
            for definition in definitions
        ]

        async def worker(unit: DetectionUnit) -> list[UnitOutcome]:
            return await self._process_unit(unit, memory)

        outcomes = await self._executor.execute(units, worker, event_queue)
        for outcome in outcomes:
            self.store.record_outcome(outcome)
        memory.add_outcomes(outcomes)

        result = BatchResult(
            org_id=org_id,
            week_start=weeks[-1],
            weeks=weeks,
            outcomes=memory.get_outcomes(),
            signals=memory.get_signals(),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info("Run %s for org '%s' complete: %s.", result.run_id, org_id, result.counts())
        if result.failed:
            logger.warning("%d unit-week(s) failed in run %s.", len(result.failed), result.run_id)
        return result

    async def _process_unit(self, unit: DetectionUnit, memory: RunMemory) -> list[UnitOutcome]:
        """Fold one unit's weeks in order, replaying history first if needed."""
        definition = unit.definition
        state, replay = self._resume_point(unit)
        fold_weeks = replay + unit.weeks
        span = len(fold_weeks) + self.config.baseline_window_weeks
        last = unit.weeks[-1]

        series = await self._provider.get_series(unit.team_id, definition.metric_key, last, span)
        sub_series = {}
        for sub_metric in definition.sub_metrics:
            sub_series[sub_metric.key] = await self._provider.get_series(
                unit.team_id, sub_metric.key, last, span,
            )

        if replay:
            logger.debug("Unit '%s' replaying %d week(s) from %s.", unit.label, len(replay), replay[0])

        requested = set(unit.weeks)
        for week in fold_weeks:
            evaluation = self._pipeline.evaluate_week(
                org_id=unit.org_id,
                team_id=unit.team_id,
                definition=definition,
                week_start=week,
                series=series,
                sub_series=sub_series,
                previous_state=state,
            )
            self.store.save_state(evaluation.state)
            state = evaluation.state
            if week in requested:
                unit.completed.append(self._commit(unit, week, evaluation, memory))
        return unit.completed

    def _resume_point(self, unit: DetectionUnit) -> tuple[DeviationState | None, list[date]]:
        """Find the state to start the fold from and the weeks to replay.

        Returns:
            The committed state to fold from (None for a cold start) and the
            weeks before the requested range that must be replayed first.
        """
        first = unit.weeks[0]
        metric_key = unit.definition.metric_key
        prior = self.store.get_state(unit.org_id, unit.team_id, metric_key, previous_week(first))
        if prior is not None:
            return prior, []

        if self.config.state_warmup_weeks == 0:
            return None, []

        earliest = previous_week(first, self.config.state_warmup_weeks)
        latest = self.store.latest_state_before(unit.org_id, unit.team_id, metric_key, first)
        if latest is not None and latest.week_start >= earliest:
            return latest, week_range(next_week(latest.week_start), previous_week(first))
        return None, week_range(earliest, previous_week(first))

    def _commit(
        self,
        unit: DetectionUnit,
        week: date,
        evaluation: WeekEvaluation,
        memory: RunMemory,
    ) -> UnitOutcome:
        status = evaluation.status
        signal_id = None
        severity = None

        if evaluation.signal is not None:
            stored, upsert = self._emitter.persist(evaluation.signal)
            status = _STATUS_FOR_UPSERT[upsert]
            signal_id = stored.id
            severity = stored.severity.value
            memory.add_signal(stored)
        elif status is UnitStatus.SUPPRESSED:
            logger.info("Suppressed unit '%s' week %s: %s", unit.label, week, evaluation.reason)

        return UnitOutcome(
            org_id=unit.org_id,
            team_id=unit.team_id,
            signal_type=unit.definition.signal_type,
            metric_key=unit.definition.metric_key,
            week_start=week,
            status=status,
            signal_id=signal_id,
            severity=severity,
            z=evaluation.deviation.z if evaluation.deviation else None,
            sustained_weeks=evaluation.state.sustained_weeks,
            reason=evaluation.reason,
        )
