"""API endpoint tests.

The app serves the generated demo organisation (no RHYTHM_SERIES_URL and no
fixture file), so a run for the last completed week has the scripted
platform drift and the two suppressed teams.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from integrations.demo_data import DEMO_ORG
from main import app
from utils.weeks import next_week, previous_week, week_start_of

client = TestClient(app)

LAST_COMPLETED = previous_week(week_start_of(datetime.now(timezone.utc)))


@pytest.fixture(scope="module")
def run():
    res = client.post("/runs", json={"org_id": DEMO_ORG})
    assert res.status_code == 202
    return client.get(f"/runs/{res.json()['run_id']}").json()


@pytest.fixture(scope="module")
def platform_signal(run):
    signals = client.get(
        "/signals",
        params={
            "org_id": DEMO_ORG,
            "team_id": "platform",
            "signal_type": "coordination-risk",
            "week_start": LAST_COMPLETED.isoformat(),
        },
    ).json()
    assert len(signals) == 1
    return signals[0]


def create_intervention(signal_id, start_date, **extra):
    return client.post("/interventions", json={
        "signal_id": signal_id,
        "action_taken": "Cancelled the recurring status meeting",
        "start_date": start_date.isoformat(),
        **extra,
    })


# ── Health ────────────────────────────────────────────────────────────────────

def test_health():
    res = client.get("/health")
    assert res.json() == {"status": "ok", "signal_types": 8}


# ── Runs ──────────────────────────────────────────────────────────────────────

class TestRuns:
    def test_run_completes(self, run):
        assert run["status"] == "complete"
        assert run["weeks"] == [LAST_COMPLETED.isoformat()]
        assert run["counts"]["suppressed"] > 0
        assert run["failed_units"] == []
        assert run["signal_ids"]

    def test_suppressed_teams_have_no_signals(self, run):
        for team_id in ("design", "support"):
            assert client.get("/signals", params={"team_id": team_id}).json() == []

    def test_backfill_run(self, run):
        res = client.post("/runs", json={
            "org_id": DEMO_ORG,
            "week_start": LAST_COMPLETED.isoformat(),
            "backfill_from": previous_week(LAST_COMPLETED).isoformat(),
            "signal_types": ["coordination-risk"],
        })
        record = client.get(f"/runs/{res.json()['run_id']}").json()
        assert record["status"] == "complete"
        assert len(record["weeks"]) == 2

    def test_inverted_backfill_rejected(self):
        res = client.post("/runs", json={
            "org_id": DEMO_ORG,
            "week_start": previous_week(LAST_COMPLETED).isoformat(),
            "backfill_from": LAST_COMPLETED.isoformat(),
        })
        assert res.status_code == 400

    def test_unknown_signal_type_rejected(self):
        res = client.post("/runs", json={"org_id": DEMO_ORG, "signal_types": ["vibes"]})
        assert res.status_code == 422

    def test_missing_org_rejected(self):
        assert client.post("/runs", json={}).status_code == 422

    def test_unknown_run(self):
        assert client.get("/runs/does-not-exist").status_code == 404


# ── Signals ───────────────────────────────────────────────────────────────────

class TestSignals:
    def test_signal_carries_evidence(self, platform_signal):
        assert platform_signal["week_start"] == LAST_COMPLETED.isoformat()
        assert platform_signal["deviation"]["direction"] == 1
        assert platform_signal["baseline"]["window_weeks"] == 6
        assert len(platform_signal["recommended_actions"]) == 3
        assert len(platform_signal["drivers"]) <= 3

    def test_get_signal(self, platform_signal):
        res = client.get(f"/signals/{platform_signal['id']}")
        assert res.json()["id"] == platform_signal["id"]

    def test_unknown_signal(self):
        assert client.get("/signals/does-not-exist").status_code == 404

    def test_patch_owner(self, platform_signal):
        res = client.patch(f"/signals/{platform_signal['id']}", json={"owner": "sam"})
        assert res.status_code == 200
        assert res.json()["owner"] == "sam"
        assert res.json()["confidence"] == platform_signal["confidence"]

    def test_empty_patch_rejected(self, platform_signal):
        assert client.patch(f"/signals/{platform_signal['id']}", json={}).status_code == 400

    def test_statistical_fields_not_patchable(self, platform_signal):
        res = client.patch(f"/signals/{platform_signal['id']}", json={"confidence": 0.1})
        assert res.status_code == 400

    def test_null_status_rejected(self, platform_signal):
        res = client.patch(f"/signals/{platform_signal['id']}", json={"status": None})
        assert res.status_code == 422

        status = client.get(f"/signals/{platform_signal['id']}").json()["status"]
        assert status is not None
        listed = client.get("/signals", params={"team_id": "platform", "status": status}).json()
        assert platform_signal["id"] in [s["id"] for s in listed]

    def test_owner_can_be_cleared(self, platform_signal):
        client.patch(f"/signals/{platform_signal['id']}", json={"owner": "sam"})
        res = client.patch(f"/signals/{platform_signal['id']}", json={"owner": None})
        assert res.status_code == 200
        assert res.json()["owner"] is None

    def test_patch_unknown_signal(self):
        assert client.patch("/signals/does-not-exist", json={"owner": "sam"}).status_code == 404


# ── Interventions ─────────────────────────────────────────────────────────────

class TestInterventions:
    def test_recheck_after_due_date_completes(self, platform_signal):
        start = previous_week(LAST_COMPLETED, 2)
        created = create_intervention(platform_signal["id"], start)
        assert created.status_code == 201
        intervention = created.json()
        assert intervention["metric_before"] == platform_signal["current_value"]
        assert intervention["recheck_date"] == (start + timedelta(days=14)).isoformat()

        res = client.post(
            f"/interventions/{intervention['id']}/recheck",
            params={"on": next_week(LAST_COMPLETED).isoformat()},
        )
        assert res.status_code == 200
        assert res.json()["status"] == "completed"
        assert res.json()["outcome_delta"]["auto_computed"] is True

        signal = client.get(f"/signals/{platform_signal['id']}").json()
        assert signal["status"] == "InProgress"
        assert signal["outcome"]["intervention_id"] == intervention["id"]

        acked = client.put(
            f"/interventions/{intervention['id']}/outcome",
            json={"user_notes": "Meetings are back to normal.", "acknowledged_by": "sam"},
        )
        assert acked.status_code == 200
        assert acked.json()["user_notes"] == "Meetings are back to normal."

        assert client.delete(f"/interventions/{intervention['id']}").status_code == 409

    def test_recheck_without_new_data_stays_pending(self, platform_signal):
        intervention = create_intervention(platform_signal["id"], LAST_COMPLETED).json()
        on = (LAST_COMPLETED + timedelta(days=14)).isoformat()

        due = client.get("/interventions/due", params={"on": on}).json()
        assert intervention["id"] in [i["id"] for i in due]

        res = client.post(f"/interventions/{intervention['id']}/recheck", params={"on": on})
        assert res.status_code == 200
        assert res.json()["status"] == "pending-recheck"

        stored = client.get(f"/interventions/{intervention['id']}").json()
        assert stored["status"] == "pending-recheck"
        assert stored["last_error"]

    def test_recheck_before_due_date_conflicts(self, platform_signal):
        today = datetime.now(timezone.utc).date()
        intervention = create_intervention(platform_signal["id"], today).json()
        assert client.post(f"/interventions/{intervention['id']}/recheck").status_code == 409

        abandoned = client.delete(f"/interventions/{intervention['id']}")
        assert abandoned.status_code == 200
        assert abandoned.json()["status"] == "abandoned"

    def test_acting_again_abandons_previous(self, platform_signal):
        today = datetime.now(timezone.utc).date()
        first = create_intervention(platform_signal["id"], today).json()
        second = create_intervention(platform_signal["id"], today).json()

        assert client.get(f"/interventions/{first['id']}").json()["status"] == "abandoned"
        signal = client.get(f"/signals/{platform_signal['id']}").json()
        assert signal["selected_intervention_id"] == second["id"]

    def test_manual_outcome(self, platform_signal):
        today = datetime.now(timezone.utc).date()
        intervention = create_intervention(platform_signal["id"], today, metric_before=40.0).json()

        res = client.put(
            f"/interventions/{intervention['id']}/outcome",
            json={"user_notes": "Measured by hand.", "metric_after": 30.0, "user_assessment": "Worked"},
        )
        assert res.status_code == 200
        delta = res.json()["outcome_delta"]
        assert delta["percent_change"] == -25.0
        assert delta["improved"] is True
        assert delta["auto_computed"] is False

    def test_list_by_team_signal_and_status(self, platform_signal):
        today = datetime.now(timezone.utc).date()
        intervention = create_intervention(platform_signal["id"], today).json()

        by_team = client.get("/interventions", params={"team_id": "platform"}).json()
        assert intervention["id"] in [i["id"] for i in by_team]
        assert {i["team_id"] for i in by_team} == {"platform"}

        by_signal = client.get("/interventions", params={"signal_id": platform_signal["id"]}).json()
        assert {i["signal_id"] for i in by_signal} == {platform_signal["id"]}

        active = client.get("/interventions", params={"team_id": "platform", "status": "active"}).json()
        assert [i["id"] for i in active] == [intervention["id"]]

        assert client.get("/interventions", params={"team_id": "design"}).json() == []

    def test_list_rejects_unknown_status(self):
        assert client.get("/interventions", params={"status": "done-ish"}).status_code == 422

    def test_recheck_due_sweep(self, platform_signal):
        intervention = create_intervention(platform_signal["id"], previous_week(LAST_COMPLETED, 2)).json()

        res = client.post("/interventions/recheck-due", params={"on": next_week(LAST_COMPLETED).isoformat()})
        assert res.status_code == 200
        assert intervention["id"] in res.json()["completed"]
        assert client.get(f"/interventions/{intervention['id']}").json()["status"] == "completed"

    def test_unknown_signal(self):
        res = client.post("/interventions", json={"signal_id": "nope", "action_taken": "x"})
        assert res.status_code == 404

    def test_empty_action_rejected(self, platform_signal):
        res = client.post("/interventions", json={"signal_id": platform_signal["id"], "action_taken": ""})
        assert res.status_code == 422

    def test_unknown_intervention(self):
        assert client.get("/interventions/does-not-exist").status_code == 404
        assert client.post("/interventions/does-not-exist/recheck").status_code == 404
