"""Deterministic demo organisation.

Generates a small organisation's weekly series for every metric in the
signal type catalog, with a few scripted stories layered on top of seeded
noise:

- platform: meeting load climbs for the last four weeks (coordination-risk).
- mobile: after-hours activity climbs for the last three weeks
  (boundary-erosion).
- data: steady. Nothing should fire beyond the odd INFO.
- design: same drift as platform, but only 6 active people. Suppressed.
- support: large team, but under half of it has usable data. Suppressed.

Same arguments always produce the same dataset.
"""

import random
from datetime import date

from core.registry import load_default_registry
from utils.weeks import previous_week, trailing_weeks, week_start_of

DEMO_ORG = "acme"

# team_id → (active_population, active_with_data)
DEMO_TEAMS = {
    "platform": (12, 11),
    "mobile": (10, 9),
    "data": (9, 9),
    "design": (6, 6),
    "support": (14, 6),
}

# team_id → (signal_type, drift weeks, step per week as a fraction of base)
DEMO_DRIFTS = {
    "platform": ("coordination-risk", 4, 0.18),
    "mobile": ("boundary-erosion", 3, 0.22),
    "design": ("coordination-risk", 4, 0.18),
}

NOISE = 0.03


def _metric_keys(registry) -> list[str]:
    """Return every headline and sub-metric key in the catalog, once each."""
    keys: list[str] = []
    for definition in registry.get_all():
        for key in [definition.metric_key, *(s.key for s in definition.sub_metrics)]:
            if key not in keys:
                keys.append(key)
    return keys


def build_demo_dataset(
    org_id: str = DEMO_ORG,
    end_week: date | None = None,
    num_weeks: int = 16,
    seed: int = 7,
) -> dict:
    """Build the demo fixture as a JSON-ready dict.

    Args:
        org_id: Organisation ID to file the teams under.
        end_week: Last week to generate. Defaults to the last completed week.
        num_weeks: Number of weeks of history.
        seed: Seed for the noise generator.

    Returns:
        Dict in the FixtureSeriesProvider layout.
    """
    end_week = week_start_of(end_week) if end_week else previous_week(week_start_of(date.today()))
    weeks = trailing_weeks(end_week, num_weeks)
    registry = load_default_registry()
    keys = _metric_keys(registry)
    rng = random.Random(seed)

    base_values = {key: round(rng.uniform(10, 50), 1) for key in keys}
    observations = []

    for team_id, (population, with_data) in DEMO_TEAMS.items():
        drift = DEMO_DRIFTS.get(team_id)
        drifting_keys: dict[str, int] = {}
        if drift:
            definition = registry.require(drift[0])
            sign = 1 if definition.polarity == "lower_is_better" else -1
            for key in [definition.metric_key, *(s.key for s in definition.sub_metrics)]:
                drifting_keys[key] = sign

        for key in keys:
            for index, week in enumerate(weeks):
                value = base_values[key] * (1 + rng.uniform(-NOISE, NOISE))
                weeks_into_drift = index - (num_weeks - drift[1]) + 1 if drift else 0
                if key in drifting_keys and weeks_into_drift > 0:
                    value *= 1 + drifting_keys[key] * drift[2] * weeks_into_drift
                observations.append({
                    "team_id": team_id,
                    "metric_key": key,
                    "week_start": week.isoformat(),
                    "value": round(max(value, 0.0), 2),
                    "sample_size": population * 12,
                    "active_population": population,
                    "active_with_data": with_data,
                    "sources": ["calendar", "chat"],
                })

    return {"orgs": {org_id: list(DEMO_TEAMS)}, "observations": observations}
