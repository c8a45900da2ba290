"""Signal schema.

A Signal is the unit of record: one classified deviation for one team, one
signal type, and one week. Its statistical fields are owned by the detection
pipeline and written only through the store's natural-key upsert. Its status,
owner, selected intervention, and outcome belong to the humans acting on it.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from schemas.baseline import Baseline
from schemas.catalog import RecommendedAction, TimeToImpact
from schemas.deviation import Deviation


class Severity(str, Enum):
    """Severity levels, ordered INFO < RISK < CRITICAL."""

    INFO = "INFO"
    RISK = "RISK"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.RISK: 1, Severity.CRITICAL: 2}


class SignalStatus(str, Enum):
    OPEN = "Open"
    ACKNOWLEDGED = "Acknowledged"
    IN_PROGRESS = "InProgress"
    RESOLVED = "Resolved"
    IGNORED = "Ignored"


class OutcomeRating(str, Enum):
    WORKED = "Worked"
    PARTIALLY_WORKED = "Partially Worked"
    DID_NOT_WORK = "Did Not Work"


class ConfidenceFactors(BaseModel):
    """The four inputs to the composite confidence, each in [0, 1]."""

    data_coverage: float = Field(ge=0.0, le=1.0)
    baseline_confidence: float = Field(ge=0.0, le=1.0)
    sustain_factor: float = Field(ge=0.0, le=1.0)
    source_quality: float = Field(ge=0.0, le=1.0)


class DataQuality(BaseModel):
    """Population and coverage figures for the evaluated week."""

    active_population: int
    active_with_data: int
    data_coverage: float
    sample_size: int
    sources: list[str] = Field(default_factory=list)
    weeks_with_data: int


class Driver(BaseModel):
    """A sub-metric contributing to the signal, ranked by the attributor."""

    key: str
    label: str
    value: float
    delta_abs: float
    delta_pct: float


class SignalOutcome(BaseModel):
    """What happened after the team acted on the signal."""

    rating: OutcomeRating
    intervention_id: str | None = None
    percent_change: float | None = None
    notes: str | None = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Signal(BaseModel):
    """A persisted, classified deviation.

    Attributes:
        id: UUID assigned at first emission. Stable across reruns.
        org_id: Organisation the team belongs to.
        team_id: Team the signal is about. Never an individual.
        week_start: Evaluated week.
        signal_type: Catalog identifier (e.g. "coordination-risk").
        metric_key: Headline metric the deviation was computed on.
        severity: INFO, RISK, or CRITICAL.
        confidence: Composite confidence in [0, 1].
        confidence_factors: The four factors behind confidence.
        data_quality: Coverage figures for the evaluated week.
        current_value: Headline metric value for the week.
        baseline: Baseline the deviation was measured against.
        deviation: Deviation details including the sustained-weeks streak.
        drivers: Up to three ranked contributing sub-metrics.
        consequence_text: Plain-language consequence for this severity.
        time_to_impact: Estimated days to visible impact, if known.
        recommended_actions: Actions from the catalog. Empty when the drift
            is in the favourable direction.
        status: Lifecycle status, set by humans.
        owner: Person responsible for follow-up, set by humans.
        selected_intervention_id: The intervention currently tracking this
            signal, if any.
        outcome: Result of the selected intervention once measured.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    org_id: str
    team_id: str
    week_start: date
    signal_type: str
    metric_key: str
    severity: Severity
    confidence: float = Field(ge=0.0, le=1.0)
    confidence_factors: ConfidenceFactors
    data_quality: DataQuality
    current_value: float
    baseline: Baseline
    deviation: Deviation
    drivers: list[Driver] = Field(default_factory=list, max_length=3)
    consequence_text: str
    time_to_impact: TimeToImpact | None = None
    recommended_actions: list[RecommendedAction] = Field(default_factory=list)
    status: SignalStatus = SignalStatus.OPEN
    owner: str | None = None
    selected_intervention_id: str | None = None
    outcome: SignalOutcome | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def natural_key(self) -> tuple[str, str, str, date]:
        return (self.org_id, self.team_id, self.signal_type, self.week_start)

    def statistical_fields(self) -> dict:
        """Return the pipeline-owned fields as plain data for comparison."""
        return self.model_dump(include=STATISTICAL_FIELDS, mode="json")


# Fields the detection pipeline owns. Upserts touch these and nothing else.
STATISTICAL_FIELDS = frozenset({
    "metric_key",
    "severity",
    "confidence",
    "confidence_factors",
    "data_quality",
    "current_value",
    "baseline",
    "deviation",
    "drivers",
    "consequence_text",
    "time_to_impact",
    "recommended_actions",
})
