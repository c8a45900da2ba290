"""Signal type catalog schemas.

Each signal type maps one headline metric to the text, actions, and
sub-metrics the emitter needs. The catalog is data (signals/signal_types.json)
validated through these models at load time, so a malformed entry fails
loudly at startup rather than mid-run.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class Effort(str, Enum):
    LOW = "LOW"
    MED = "MED"
    HIGH = "HIGH"


class SubMetric(BaseModel):
    """A metric that feeds a signal type, used for driver attribution.

    Attributes:
        key: Metric key as known to the series provider.
        label: Display label.
        weight: Contribution weight to the composite, in (0, 1].
    """

    key: str
    label: str
    weight: float = Field(default=1.0, gt=0.0, le=1.0)


class RecommendedAction(BaseModel):
    """One recommended response to a signal, with its trade-off."""

    action_id: str
    title: str
    expected_effect: str
    effort: Effort
    timeframe: str
    trade_offs: str


class TimeToImpact(BaseModel):
    """Estimated days until the drift has a visible effect."""

    min_days: int = Field(ge=0)
    max_days: int = Field(ge=0)


class SignalTypeDefinition(BaseModel):
    """Catalog entry for one signal type.

    Attributes:
        signal_type: Hyphenated identifier (e.g. "coordination-risk").
        label: Display name.
        category: Grouping used by downstream dashboards.
        metric_key: Headline metric the deviation is computed on.
        metric_label: Display label for the headline metric.
        polarity: Whether a decrease or an increase of the headline metric
            is an improvement. Cross-checked against the polarity table at
            registry load.
        sub_metrics: Metrics ranked by the Driver Attributor.
        consequences: Consequence text keyed by severity name.
        time_to_impact: Time-to-impact estimate keyed by severity name.
        neutral_text: Text used when the drift is in the favourable direction.
        actions: Recommended actions, in display order.
    """

    signal_type: str
    label: str
    category: str
    metric_key: str
    metric_label: str
    polarity: Literal["lower_is_better", "higher_is_better"]
    sub_metrics: list[SubMetric] = Field(default_factory=list)
    consequences: dict[str, str]
    time_to_impact: dict[str, TimeToImpact]
    neutral_text: str
    actions: list[RecommendedAction] = Field(default_factory=list)
