"""Run memory for a single weekly batch.

RunMemory is the append-only ledger that lives for the duration of one
DetectionRuntime run. Unit workers write their outcomes and signals into it
as they finish; the runtime reads it once every unit is done to build the
BatchResult.

It is not the store. Nothing here persists between runs: the durable copy of
each outcome goes to the store's audit trail, and signals go through the
store's upsert.

Lifecycle within one run:
    1. DetectionRuntime creates an empty RunMemory
    2. Each unit worker appends its UnitOutcomes and Signals
    3. DetectionRuntime reads get_outcomes() / get_signals() into BatchResult
"""

from schemas.result import UnitOutcome
from schemas.signal import Signal


class RunMemory:
    """Typed, append-only in-RAM ledger for one run.

    Units write concurrently from separate tasks on the same event loop, so
    appends never interleave mid-operation.
    """

    def __init__(self) -> None:
        self._outcomes: list[UnitOutcome] = []
        self._signals: list[Signal] = []

    def add_outcomes(self, outcomes: list[UnitOutcome]) -> None:
        """Append several outcomes in one call. An empty list is a no-op."""
        self._outcomes.extend(outcomes)

    def add_signal(self, signal: Signal) -> None:
        self._signals.append(signal)

    def get_outcomes(self) -> list[UnitOutcome]:
        """Return outcomes ordered by team, signal type, then week.

        Units finish in whatever order the event loop schedules them; the
        sort makes the batch result independent of that order.
        """
        return sorted(self._outcomes, key=lambda o: (o.team_id, o.signal_type, o.week_start))

    def get_signals(self) -> list[Signal]:
        """Return signals ordered by team, signal type, then week."""
        return sorted(self._signals, key=lambda s: (s.team_id, s.signal_type, s.week_start))
