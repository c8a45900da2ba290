"""Result schemas.

Defines the per-unit outcome (UnitOutcome) and the weekly batch result
(BatchResult). A unit is one (team, signal type) evaluated for one week.
Every unit produces exactly one UnitOutcome, including units that were
suppressed, skipped, or failed, so the audit trail can always tell a
privacy suppression apart from "nothing to report".
"""

import uuid
from collections import Counter
from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from schemas.signal import Signal


class UnitStatus(str, Enum):
    """How one unit-week ended.

    Values:
        EMITTED: A new Signal was created.
        UPDATED: An existing Signal's statistical fields were rewritten.
        UNCHANGED: Rerun of an already-emitted week with identical numbers.
        SUPPRESSED: The privacy guardrail blocked the week.
        INSUFFICIENT_BASELINE: Fewer than the minimum baseline weeks had data.
        NO_DEVIATION: The week was within the emission band.
        MISSING_CURRENT: The evaluated week itself had no data.
        FAILED: The unit raised or timed out. Other units are unaffected.
    """

    EMITTED = "emitted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SUPPRESSED = "suppressed"
    INSUFFICIENT_BASELINE = "insufficient_baseline"
    NO_DEVIATION = "no_deviation"
    MISSING_CURRENT = "missing_current"
    FAILED = "failed"


class UnitOutcome(BaseModel):
    """Audit record for one (team, signal type, week).

    Attributes:
        org_id: Organisation.
        team_id: Team.
        signal_type: Catalog signal type.
        metric_key: Headline metric evaluated.
        week_start: Evaluated week.
        status: See UnitStatus.
        signal_id: Set when a Signal was written or matched.
        severity: Set when a Signal was written or matched.
        z: Effective z-score, when a deviation was computed.
        sustained_weeks: Streak length committed for the week.
        reason: Human-readable detail for non-emitting outcomes.
    """

    org_id: str
    team_id: str
    signal_type: str
    metric_key: str
    week_start: date
    status: UnitStatus
    signal_id: str | None = None
    severity: str | None = None
    z: float | None = None
    sustained_weeks: int = 0
    reason: str | None = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BatchResult(BaseModel):
    """Output of one DetectionRuntime.run_week() call.

    Attributes:
        run_id: Auto-generated UUID for this run.
        org_id: Organisation evaluated.
        week_start: Last week evaluated.
        weeks: Every week evaluated, ascending. One entry for a weekly run,
            several for a backfill.
        outcomes: One UnitOutcome per (team, signal type, week).
        signals: Signals emitted, updated, or matched by this run.
        started_at: Wall-clock start.
        finished_at: Wall-clock end.
    """

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    org_id: str
    week_start: date
    weeks: list[date] = Field(default_factory=list)
    outcomes: list[UnitOutcome] = Field(default_factory=list)
    signals: list[Signal] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.status is UnitStatus.FAILED]

    def counts(self) -> dict[str, int]:
        """Return the number of outcomes per status value."""
        return dict(Counter(o.status.value for o in self.outcomes))
