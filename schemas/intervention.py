"""Intervention schema.

An Intervention is a logged action taken in response to a Signal. It carries
the metric value at the time of the action and a fixed recheck date. The
Outcome Tracker fills outcome_delta exactly once when the recheck date
arrives; after that the record is read-only apart from human notes.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from schemas.signal import OutcomeRating


class InterventionStatus(str, Enum):
    ACTIVE = "active"
    PENDING_RECHECK = "pending-recheck"
    COMPLETED = "completed"
    IGNORED = "ignored"
    ABANDONED = "abandoned"


RECHECKABLE_STATUSES = frozenset({InterventionStatus.ACTIVE, InterventionStatus.PENDING_RECHECK})


class OutcomeDelta(BaseModel):
    """Measured effect of an intervention.

    Attributes:
        metric_before: Metric value when the intervention started.
        metric_after: Metric value read at recheck time.
        percent_change: (after - before) / before * 100, rounded to 1 place.
        improved: Polarity-aware verdict for the signal type.
        auto_computed: True when written by the Outcome Tracker, False when
            entered manually.
        computed_at: When the outcome was written.
    """

    metric_before: float
    metric_after: float
    percent_change: float
    improved: bool
    auto_computed: bool
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Intervention(BaseModel):
    """A single action taken on a Signal, with its scheduled recheck.

    version is incremented on every write. Writers pass the version they
    read to the store's compare-and-set, so two concurrent rechecks cannot
    both record an outcome.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    signal_id: str
    org_id: str
    team_id: str
    signal_type: str
    metric_key: str
    action_taken: str
    action_id: str | None = None
    metric_before: float | None = None
    start_date: date
    recheck_date: date
    status: InterventionStatus = InterventionStatus.ACTIVE
    outcome_delta: OutcomeDelta | None = None
    last_error: str | None = None
    user_notes: str | None = None
    user_assessment: OutcomeRating | None = None
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = 0

    def is_due(self, today: date) -> bool:
        return self.status in RECHECKABLE_STATUSES and self.recheck_date <= today
