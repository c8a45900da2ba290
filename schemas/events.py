"""Pipeline event schema.

Events are emitted by the executor while a weekly batch runs so a CLI or an
API stream can show progress. The runtime and its listeners are decoupled:
the batch runs the same whether or not anything reads these events.
"""

from enum import Enum

from pydantic import BaseModel


class EventType(str, Enum):
    """The lifecycle stages a unit can emit events for.

    Extends str so values serialize to plain strings ("started", "emitted")
    rather than "EventType.STARTED".

    Values:
        STARTED: The unit has begun its week fold.
        EMITTED: A Signal was created or updated.
        SUPPRESSED: The privacy guardrail blocked the evaluated week.
        SKIPPED: Thin baseline history or no data for the evaluated week.
        COMPLETE: The unit finished within the baseline band.
        ERROR: The unit raised or timed out and was recorded as failed.
    """

    STARTED = "started"
    EMITTED = "emitted"
    SUPPRESSED = "suppressed"
    SKIPPED = "skipped"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineEvent(BaseModel):
    """A single event emitted during a weekly batch.

    Attributes:
        unit: "team_id/signal_type" label of the unit that emitted it.
        event_type: Lifecycle stage. See EventType.
        message: Human-readable detail (e.g. "RISK, z=2.41, 3 weeks").
        timestamp_ms: Milliseconds since the batch started.
    """

    unit: str
    event_type: EventType
    message: str
    timestamp_ms: float
