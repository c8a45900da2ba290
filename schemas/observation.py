"""Metric observation schema.

A MetricObservation is one week of one metric for one team, as delivered by
the Metric Series Provider. It is the only input the detection pipeline
reads. Observations for past weeks are final: the pipeline never edits them.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

PRIMARY_SOURCES = frozenset({"calendar", "chat"})


class MetricObservation(BaseModel):
    """A single weekly value for one (team, metric) pair.

    A week with no usable data is still represented, with value=None, so
    the Baseline Builder can count weeks with data correctly. Providers
    must never skip a week silently.

    Attributes:
        team_id: Team the observation belongs to.
        metric_key: Metric identifier (e.g. "meetingLoadIndex").
        week_start: Monday of the observed week.
        value: Aggregated team-level value, or None if the week has no data.
        sample_size: Number of underlying data points (events, days) that
            produced the value.
        active_population: Active members of the team that week.
        active_with_data: Active members for whom usable data existed.
        sources: Data sources that contributed (e.g. "calendar", "chat").
    """

    model_config = ConfigDict(frozen=True)

    team_id: str
    metric_key: str
    week_start: date
    value: float | None = None
    sample_size: int = Field(default=0, ge=0)
    active_population: int = Field(default=0, ge=0)
    active_with_data: int = Field(default=0, ge=0)
    sources: tuple[str, ...] = ()

    @property
    def has_data(self) -> bool:
        return self.value is not None

    @property
    def data_coverage(self) -> float:
        """Share of the active population with usable data, in [0, 1]."""
        if self.active_population <= 0:
            return 0.0
        return min(self.active_with_data / self.active_population, 1.0)

    @property
    def primary_source_count(self) -> int:
        return len(PRIMARY_SOURCES.intersection(self.sources))
