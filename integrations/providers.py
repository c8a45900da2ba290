"""Metric series providers.

The detection pipeline reads weekly observations through the
MetricSeriesProvider protocol. Two implementations ship here:

- FixtureSeriesProvider: serves observations from a JSON file or from memory.
  Used for demos, the CLI, and tests.
- HttpSeriesProvider: calls the upstream metrics service over HTTP.

provider_from_env() picks between them: live mode when RHYTHM_SERIES_URL is
set, fixture mode otherwise.

Both implementations return exactly num_weeks observations in ascending week
order. A week the source has no data for comes back as an observation with
value=None, never as a gap in the list.
"""

import json
import logging
import os
import pathlib
from collections.abc import Iterable
from datetime import date
from typing import Protocol

import httpx
from pydantic import ValidationError

from core.errors import ProviderUnavailable
from integrations.demo_data import build_demo_dataset
from schemas.observation import MetricObservation
from utils.weeks import trailing_weeks, week_start_of

logger = logging.getLogger(__name__)

DEFAULT_FIXTURE = pathlib.Path(__file__).parents[1] / "fixtures" / "demo_org.json"


class MetricSeriesProvider(Protocol):
    """Protocol for anything that can serve weekly team metric series."""

    async def get_series(
        self,
        team_id: str,
        metric_key: str,
        upto_week: date,
        num_weeks: int,
    ) -> list[MetricObservation]:
        """Return num_weeks observations ending at upto_week, ascending."""

    async def list_teams(self, org_id: str) -> list[str]:
        """Return the team IDs that belong to org_id."""


def fill_gaps(
    team_id: str,
    metric_key: str,
    observations: Iterable[MetricObservation],
    upto_week: date,
    num_weeks: int,
) -> list[MetricObservation]:
    """Align observations to the requested weeks, filling holes explicitly.

    Observations outside the requested range are dropped. A week with no
    observation becomes MetricObservation(value=None).
    """
    by_week = {o.week_start: o for o in observations}
    return [
        by_week.get(week) or MetricObservation(team_id=team_id, metric_key=metric_key, week_start=week)
        for week in trailing_weeks(upto_week, num_weeks)
    ]


# ---------------------------------------------------------------------------
# Fixture provider
# ---------------------------------------------------------------------------

class FixtureSeriesProvider:
    """Serves observations held in memory.

    Fixture layout (JSON):
        {
            "orgs": {"acme": ["platform", "design"]},
            "observations": [
                {"team_id": "platform", "metric_key": "meetingLoadIndex",
                 "week_start": "2026-03-02", "value": 31.5, "sample_size": 140,
                 "active_population": 12, "active_with_data": 11,
                 "sources": ["calendar", "chat"]},
                ...
            ]
        }
    """

    def __init__(
        self,
        observations: Iterable[MetricObservation] = (),
        orgs: dict[str, list[str]] | None = None,
    ) -> None:
        self._orgs = {org: list(teams) for org, teams in (orgs or {}).items()}
        self._series: dict[tuple[str, str], dict[date, MetricObservation]] = {}
        for observation in observations:
            self.record(observation)

    @classmethod
    def from_dict(cls, data: dict) -> "FixtureSeriesProvider":
        return cls(
            observations=[MetricObservation.model_validate(o) for o in data.get("observations", [])],
            orgs=data.get("orgs", {}),
        )

    @classmethod
    def from_file(cls, path: pathlib.Path) -> "FixtureSeriesProvider":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def record(self, observation: MetricObservation) -> None:
        """Add or replace one week's observation."""
        key = (observation.team_id, observation.metric_key)
        self._series.setdefault(key, {})[observation.week_start] = observation

    async def get_series(
        self,
        team_id: str,
        metric_key: str,
        upto_week: date,
        num_weeks: int,
    ) -> list[MetricObservation]:
        stored = self._series.get((team_id, metric_key), {})
        return fill_gaps(team_id, metric_key, stored.values(), week_start_of(upto_week), num_weeks)

    async def list_teams(self, org_id: str) -> list[str]:
        return list(self._orgs.get(org_id, []))


# ---------------------------------------------------------------------------
# HTTP provider
# ---------------------------------------------------------------------------

class HttpSeriesProvider:
    """Reads series from the upstream metrics service.

    Endpoints:
        GET /teams/{team_id}/series/{metric_key}?upto_week=...&num_weeks=...
            → {"observations": [...]}
        GET /orgs/{org_id}/teams
            → {"teams": ["platform", ...]}

    Any transport error, non-2xx response, or malformed body is raised as
    ProviderUnavailable so the runtime can record the unit as failed and the
    scheduler can retry.

    Attributes:
        base_url: Root URL of the metrics service.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._transport = transport

    async def get_series(
        self,
        team_id: str,
        metric_key: str,
        upto_week: date,
        num_weeks: int,
    ) -> list[MetricObservation]:
        upto_week = week_start_of(upto_week)
        body = await self._get(
            f"/teams/{team_id}/series/{metric_key}",
            params={"upto_week": upto_week.isoformat(), "num_weeks": num_weeks},
        )
        try:
            observations = [
                MetricObservation.model_validate({"team_id": team_id, "metric_key": metric_key, **o})
                for o in body["observations"]
            ]
        except (KeyError, TypeError, ValidationError) as exc:
            raise ProviderUnavailable(
                f"Malformed series for team '{team_id}', metric '{metric_key}': {exc}"
            ) from exc

        logger.debug(
            "Fetched %d observations for team '%s' metric '%s'.",
            len(observations), team_id, metric_key,
        )
        return fill_gaps(team_id, metric_key, observations, upto_week, num_weeks)

    async def list_teams(self, org_id: str) -> list[str]:
        body = await self._get(f"/orgs/{org_id}/teams")
        try:
            return [str(team) for team in body["teams"]]
        except (KeyError, TypeError) as exc:
            raise ProviderUnavailable(f"Malformed team list for org '{org_id}': {exc}") from exc

    async def _get(self, path: str, params: dict | None = None) -> dict:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(path, params=params)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable(f"GET {path} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def provider_from_env() -> MetricSeriesProvider:
    """Build the provider the environment asks for.

    - RHYTHM_SERIES_URL set: HttpSeriesProvider, with RHYTHM_SERIES_TOKEN as
      the bearer token if present.
    - Otherwise: FixtureSeriesProvider from RHYTHM_FIXTURE_PATH, falling back
      to fixtures/demo_org.json, falling back to freshly generated demo data.
    """
    url = os.environ.get("RHYTHM_SERIES_URL")
    if url:
        logger.info("Using metrics service at %s.", url)
        return HttpSeriesProvider(url, token=os.environ.get("RHYTHM_SERIES_TOKEN"))

    fixture_path = pathlib.Path(os.environ.get("RHYTHM_FIXTURE_PATH") or DEFAULT_FIXTURE)
    if fixture_path.exists():
        logger.info("RHYTHM_SERIES_URL not set. Using fixture %s.", fixture_path)
        return FixtureSeriesProvider.from_file(fixture_path)

    logger.warning("Fixture %s not found. Using generated demo data.", fixture_path)
    return FixtureSeriesProvider.from_dict(build_demo_dataset())
