from datetime import date

from schemas.observation import MetricObservation


def test_observation_schema_smoke() -> None:
    observation = MetricObservation(
        team_id="platform",
        metric_key="meetingLoadIndex",
        week_start=date(2026, 3, 2),
        value=31.5,
        active_population=12,
        active_with_data=11,
    )
    assert observation.team_id == "platform"
    assert observation.has_data
