"""Metric series provider tests.

The HTTP provider runs against httpx.MockTransport, so nothing leaves the
process.
"""

import json
from datetime import date

import httpx
import pytest

from core.errors import ProviderUnavailable
from integrations.demo_data import DEMO_TEAMS, build_demo_dataset
from integrations.providers import FixtureSeriesProvider, HttpSeriesProvider, fill_gaps
from schemas.observation import MetricObservation
from utils.weeks import previous_week

WEEK = date(2026, 3, 2)


def make_obs(week, value=10.0, team_id="platform", metric_key="meetingLoadIndex"):
    return MetricObservation(team_id=team_id, metric_key=metric_key, week_start=week, value=value)


# ── fill_gaps ─────────────────────────────────────────────────────────────────

class TestFillGaps:
    def test_holes_become_empty_observations(self):
        series = fill_gaps("platform", "meetingLoadIndex", [make_obs(previous_week(WEEK, 2)), make_obs(WEEK)], WEEK, 4)

        assert [o.week_start for o in series] == [previous_week(WEEK, n) for n in (3, 2, 1, 0)]
        assert [o.has_data for o in series] == [False, True, False, True]
        assert series[0].team_id == "platform"

    def test_observations_outside_range_are_dropped(self):
        series = fill_gaps("platform", "meetingLoadIndex", [make_obs(previous_week(WEEK, 10))], WEEK, 2)
        assert not any(o.has_data for o in series)


# ── FixtureSeriesProvider ─────────────────────────────────────────────────────

class TestFixtureSeriesProvider:
    async def test_from_dict(self):
        provider = FixtureSeriesProvider.from_dict({
            "orgs": {"acme": ["platform", "design"]},
            "observations": [
                {"team_id": "platform", "metric_key": "meetingLoadIndex", "week_start": "2026-03-02",
                 "value": 31.5, "sample_size": 140, "active_population": 12, "active_with_data": 11,
                 "sources": ["calendar", "chat"]},
            ],
        })

        assert await provider.list_teams("acme") == ["platform", "design"]
        series = await provider.get_series("platform", "meetingLoadIndex", WEEK, 3)
        assert len(series) == 3
        assert series[-1].value == 31.5
        assert series[-1].sources == ("calendar", "chat")

    async def test_unknown_org_has_no_teams(self):
        assert await FixtureSeriesProvider().list_teams("nobody") == []

    async def test_upto_week_is_normalised_to_monday(self):
        provider = FixtureSeriesProvider([make_obs(WEEK)])
        series = await provider.get_series("platform", "meetingLoadIndex", date(2026, 3, 5), 1)
        assert series[0].week_start == WEEK
        assert series[0].has_data

    async def test_record_replaces_week(self):
        provider = FixtureSeriesProvider([make_obs(WEEK, 10.0)])
        provider.record(make_obs(WEEK, 12.0))
        series = await provider.get_series("platform", "meetingLoadIndex", WEEK, 1)
        assert series[0].value == 12.0


# ── HttpSeriesProvider ────────────────────────────────────────────────────────

def make_http_provider(handler) -> HttpSeriesProvider:
    return HttpSeriesProvider(
        "http://metrics.test", token="secret", transport=httpx.MockTransport(handler),
    )


class TestHttpSeriesProvider:
    async def test_get_series_fills_missing_weeks(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"observations": [
                {"week_start": "2026-03-02", "value": 31.5, "active_population": 12, "active_with_data": 11},
            ]})

        series = await make_http_provider(handler).get_series("platform", "meetingLoadIndex", WEEK, 2)

        assert seen["path"] == "/teams/platform/series/meetingLoadIndex"
        assert seen["params"] == {"upto_week": "2026-03-02", "num_weeks": "2"}
        assert seen["auth"] == "Bearer secret"
        assert [o.has_data for o in series] == [False, True]
        assert series[-1].metric_key == "meetingLoadIndex"

    async def test_list_teams(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/orgs/acme/teams"
            return httpx.Response(200, json={"teams": ["platform", "mobile"]})

        assert await make_http_provider(handler).list_teams("acme") == ["platform", "mobile"]

    async def test_server_error_raises_provider_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="upstream down")

        with pytest.raises(ProviderUnavailable, match="failed"):
            await make_http_provider(handler).get_series("platform", "meetingLoadIndex", WEEK, 6)

    async def test_transport_error_raises_provider_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderUnavailable):
            await make_http_provider(handler).list_teams("acme")

    async def test_malformed_body_raises_provider_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"rows": []})

        with pytest.raises(ProviderUnavailable, match="Malformed"):
            await make_http_provider(handler).get_series("platform", "meetingLoadIndex", WEEK, 6)

    async def test_invalid_observation_raises_provider_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"observations": [{"week_start": "not-a-date"}]})

        with pytest.raises(ProviderUnavailable, match="Malformed"):
            await make_http_provider(handler).get_series("platform", "meetingLoadIndex", WEEK, 6)

    async def test_non_json_body_raises_provider_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        with pytest.raises(ProviderUnavailable):
            await make_http_provider(handler).list_teams("acme")


# ── Demo dataset ──────────────────────────────────────────────────────────────

class TestDemoDataset:
    def test_same_arguments_same_dataset(self):
        assert build_demo_dataset(end_week=WEEK) == build_demo_dataset(end_week=WEEK)

    def test_every_team_listed(self):
        data = build_demo_dataset(end_week=WEEK)
        assert data["orgs"] == {"acme": list(DEMO_TEAMS)}

    def test_series_end_at_requested_week(self):
        data = build_demo_dataset(end_week=WEEK, num_weeks=4)
        weeks = {o["week_start"] for o in data["observations"]}
        assert max(weeks) == WEEK.isoformat()
        assert len(weeks) == 4

    def test_dataset_is_json_serialisable(self):
        json.dumps(build_demo_dataset(end_week=WEEK))

    async def test_loads_into_fixture_provider(self):
        provider = FixtureSeriesProvider.from_dict(build_demo_dataset(end_week=WEEK))
        series = await provider.get_series("design", "meetingLoadIndex", WEEK, 16)
        assert all(o.has_data for o in series)
        assert series[-1].active_population == 6
