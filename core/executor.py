"""Parallel unit executor.

ParallelExecutor runs every (team, signal type) unit of a weekly batch
concurrently and collects their outcomes. It handles concurrency limits,
timeouts, and fault isolation so the runtime does not have to.

The key guarantee: one unit failing never causes other units to be skipped.
Each unit runs in its own task with its own exception boundary. A unit that
fails part-way through keeps the outcomes of the weeks it finished, and every
remaining week is reported FAILED.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date

from schemas.catalog import SignalTypeDefinition
from schemas.events import EventType, PipelineEvent
from schemas.result import UnitOutcome, UnitStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_CONCURRENCY = 8

_EVENT_FOR_STATUS = {
    UnitStatus.EMITTED: EventType.EMITTED,
    UnitStatus.UPDATED: EventType.EMITTED,
    UnitStatus.UNCHANGED: EventType.COMPLETE,
    UnitStatus.SUPPRESSED: EventType.SUPPRESSED,
    UnitStatus.INSUFFICIENT_BASELINE: EventType.SKIPPED,
    UnitStatus.MISSING_CURRENT: EventType.SKIPPED,
    UnitStatus.NO_DEVIATION: EventType.COMPLETE,
    UnitStatus.FAILED: EventType.ERROR,
}


@dataclass
class DetectionUnit:
    """One independent piece of a batch: a team, a signal type, and its weeks.

    A dataclass rather than a Pydantic model because it is an internal
    runtime object. Weeks are processed by the worker in the order given,
    which must be ascending.

    Attributes:
        org_id: Organisation of the team.
        team_id: Team to evaluate.
        definition: Catalog entry for the signal type.
        weeks: Weeks to evaluate, ascending.
        completed: Outcomes of weeks already committed. The worker appends
            here as it goes, so a unit cut short by a timeout or an error
            still reports the weeks it persisted.
    """

    org_id: str
    team_id: str
    definition: SignalTypeDefinition
    weeks: list[date] = field(default_factory=list)
    completed: list[UnitOutcome] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.team_id}/{self.definition.signal_type}"


UnitWorker = Callable[[DetectionUnit], Awaitable[list[UnitOutcome]]]


class ParallelExecutor:
    """Runs a list of units concurrently and returns their outcomes.

    Uses asyncio.TaskGroup to schedule all units at once and a semaphore to
    cap how many run at the same time. Each unit runs in an isolated task:
    if one raises or times out, the others continue unaffected.

    Attributes:
        timeout_seconds: Maximum time to wait for a single unit before
            cancelling it and recording it as failed.
        max_concurrency: Maximum units running at once.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_concurrency = max_concurrency

    async def execute(
        self,
        units: list[DetectionUnit],
        worker: UnitWorker,
        event_queue: asyncio.Queue | None = None,
    ) -> list[UnitOutcome]:
        """Run worker over every unit concurrently.

        The method waits until every unit has completed, timed out, or
        raised before returning.

        Args:
            units: Units to run. Typically one per team per signal type.
            worker: Coroutine function that processes one unit's weeks in
                order and returns one UnitOutcome per week.
            event_queue: Optional asyncio.Queue to emit PipelineEvents into.
                If None, events are skipped. The batch is unaffected by
                whether anything is listening.

        Returns:
            All outcomes from all units. Failed units contribute FAILED
            outcomes rather than being dropped.
        """
        if not units:
            return []

        exec_start = time.perf_counter()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with asyncio.TaskGroup() as tg:
            tasks = [
                tg.create_task(
                    self._run_unit_safely(unit, worker, semaphore, event_queue, exec_start),
                    name=unit.label,
                )
                for unit in units
            ]

        return [outcome for t in tasks for outcome in t.result()]

    async def _run_unit_safely(
        self,
        unit: DetectionUnit,
        worker: UnitWorker,
        semaphore: asyncio.Semaphore,
        event_queue: asyncio.Queue | None,
        exec_start: float,
    ) -> list[UnitOutcome]:
        """Run a single unit with timeout and exception handling.

        This method never raises. Failures are logged and turned into FAILED
        outcomes, which keeps a single failing unit from propagating into
        the TaskGroup and cancelling the others.
        """

        async def emit(event_type: EventType, message: str) -> None:
            if event_queue is not None:
                ts_ms = (time.perf_counter() - exec_start) * 1000
                await event_queue.put(PipelineEvent(
                    unit=unit.label,
                    event_type=event_type,
                    message=message,
                    timestamp_ms=ts_ms,
                ))

        async with semaphore:
            unit_start = time.perf_counter()
            await emit(EventType.STARTED, f"{len(unit.weeks)} week(s)")

            try:
                outcomes = await asyncio.wait_for(worker(unit), timeout=self.timeout_seconds)

            except asyncio.TimeoutError:
                elapsed = time.perf_counter() - unit_start
                await emit(EventType.ERROR, f"timed out after {elapsed:.1f}s")
                logger.error(
                    "Unit '%s' timed out after %.1fs (limit: %ss). Recording as failed.",
                    unit.label,
                    elapsed,
                    self.timeout_seconds,
                )
                return self._failed(unit, f"timed out after {elapsed:.1f}s")

            except Exception as exc:
                elapsed_ms = (time.perf_counter() - unit_start) * 1000
                await emit(EventType.ERROR, str(exc))
                logger.error(
                    "Unit '%s' raised after %.0fms. Recording as failed. Error: %s",
                    unit.label,
                    elapsed_ms,
                    exc,
                )
                return self._failed(unit, str(exc))

        for outcome in outcomes:
            await emit(_EVENT_FOR_STATUS[outcome.status], self._describe(outcome))
        return outcomes

    @staticmethod
    def _failed(unit: DetectionUnit, reason: str) -> list[UnitOutcome]:
        """Keep the unit's committed weeks and mark the rest FAILED."""
        done = {o.week_start for o in unit.completed}
        return list(unit.completed) + [
            UnitOutcome(
                org_id=unit.org_id,
                team_id=unit.team_id,
                signal_type=unit.definition.signal_type,
                metric_key=unit.definition.metric_key,
                week_start=week,
                status=UnitStatus.FAILED,
                reason=reason,
            )
            for week in unit.weeks
            if week not in done
        ]

    @staticmethod
    def _describe(outcome: UnitOutcome) -> str:
        if outcome.severity:
            return (
                f"{outcome.week_start} {outcome.severity} "
                f"z={outcome.z:.2f}, {outcome.sustained_weeks} week(s)"
            )
        return f"{outcome.week_start} {outcome.status.value}"
