"""Schema validation tests.

These tests verify that the Pydantic models accept valid data, reject invalid
data, and enforce field constraints. No external services required.
"""

import uuid
from datetime import date

import pytest
from pydantic import ValidationError

from core.config import DetectionConfig
from schemas.baseline import Baseline, BaselineResult, BaselineStatus
from schemas.catalog import SignalTypeDefinition, SubMetric
from schemas.deviation import Deviation
from schemas.events import EventType, PipelineEvent
from schemas.intervention import Intervention, InterventionStatus
from schemas.observation import MetricObservation
from schemas.result import BatchResult, UnitOutcome, UnitStatus
from schemas.signal import ConfidenceFactors, DataQuality, Driver, Severity, Signal

WEEK = date(2026, 3, 2)


# ── Helpers ──────────────────────────────────────────────────────────────────

def make_observation(**overrides) -> MetricObservation:
    defaults = dict(
        team_id="platform",
        metric_key="meetingLoadIndex",
        week_start=WEEK,
        value=31.5,
        sample_size=140,
        active_population=12,
        active_with_data=9,
        sources=("calendar", "chat"),
    )
    return MetricObservation(**{**defaults, **overrides})


def make_baseline(**overrides) -> Baseline:
    defaults = dict(
        mean=24.0, median=24.0, std=1.5, mad=1.0, p25=23.0, p75=25.0,
        confidence=1.0, window_weeks=6, weeks_with_data=6,
    )
    return Baseline(**{**defaults, **overrides})


def make_signal(**overrides) -> Signal:
    defaults = dict(
        org_id="acme",
        team_id="platform",
        week_start=WEEK,
        signal_type="coordination-risk",
        metric_key="meetingLoadIndex",
        severity=Severity.RISK,
        confidence=0.82,
        confidence_factors=ConfidenceFactors(
            data_coverage=0.75, baseline_confidence=1.0, sustain_factor=0.67, source_quality=1.0,
        ),
        data_quality=DataQuality(
            active_population=12, active_with_data=9, data_coverage=0.75,
            sample_size=140, weeks_with_data=6,
        ),
        current_value=31.5,
        baseline=make_baseline(),
        deviation=Deviation(current_value=31.5, delta_abs=7.5, z=5.06, direction=1, sustained_weeks=2),
        consequence_text="Coordination overhead is crowding out delivery work.",
    )
    return Signal(**{**defaults, **overrides})


def make_driver(key: str) -> Driver:
    return Driver(key=key, label=key, value=10.0, delta_abs=2.0, delta_pct=25.0)


# ── MetricObservation ─────────────────────────────────────────────────────────

class TestMetricObservation:
    def test_coverage_is_share_of_population(self):
        assert make_observation().data_coverage == 0.75

    def test_coverage_clamped_to_one(self):
        assert make_observation(active_with_data=20).data_coverage == 1.0

    def test_zero_population_has_zero_coverage(self):
        assert make_observation(active_population=0, active_with_data=0).data_coverage == 0.0

    def test_missing_value_has_no_data(self):
        obs = make_observation(value=None)
        assert obs.has_data is False

    def test_zero_value_still_has_data(self):
        assert make_observation(value=0.0).has_data is True

    def test_primary_source_count_ignores_other_sources(self):
        assert make_observation(sources=("calendar", "surveys")).primary_source_count == 1

    def test_observation_is_frozen(self):
        obs = make_observation()
        with pytest.raises(ValidationError):
            obs.value = 1.0

    def test_negative_sample_size_raises(self):
        with pytest.raises(ValidationError):
            make_observation(sample_size=-1)


# ── Baseline ──────────────────────────────────────────────────────────────────

class TestBaseline:
    def test_valid_baseline(self):
        assert make_baseline().degenerate is False

    def test_degenerate_when_mad_and_std_zero(self):
        assert make_baseline(std=0.0, mad=0.0).degenerate is True

    def test_negative_spread_raises(self):
        with pytest.raises(ValidationError):
            make_baseline(mad=-0.1)

    def test_confidence_above_one_raises(self):
        with pytest.raises(ValidationError):
            make_baseline(confidence=1.2)

    def test_insufficient_result_is_not_ok(self):
        result = BaselineResult(status=BaselineStatus.INSUFFICIENT, reason="2 of 6 weeks")
        assert result.ok is False
        assert result.baseline is None


# ── Deviation ─────────────────────────────────────────────────────────────────

class TestDeviation:
    def test_defaults_are_in_band(self):
        d = Deviation(current_value=10.0, delta_abs=0.0)
        assert d.direction == 0
        assert d.sustained_weeks == 0
        assert d.meets_risk is False

    def test_direction_out_of_range_raises(self):
        with pytest.raises(ValidationError):
            Deviation(current_value=10.0, delta_abs=0.0, direction=2)


# ── Signal ────────────────────────────────────────────────────────────────────

class TestSignal:
    def test_id_is_valid_uuid(self):
        uuid.UUID(make_signal().id)

    def test_each_instance_gets_unique_id(self):
        assert make_signal().id != make_signal().id

    def test_defaults_to_open_and_unowned(self):
        s = make_signal()
        assert s.status.value == "Open"
        assert s.owner is None
        assert s.outcome is None

    def test_natural_key(self):
        assert make_signal().natural_key == ("acme", "platform", "coordination-risk", WEEK)

    def test_statistical_fields_exclude_human_fields(self):
        fields = make_signal().statistical_fields()
        assert "confidence" in fields
        assert "status" not in fields
        assert "owner" not in fields
        assert "id" not in fields

    def test_statistical_fields_ignore_identity(self):
        assert make_signal().statistical_fields() == make_signal().statistical_fields()

    def test_at_most_three_drivers(self):
        make_signal(drivers=[make_driver(k) for k in "abc"])
        with pytest.raises(ValidationError):
            make_signal(drivers=[make_driver(k) for k in "abcd"])

    def test_confidence_above_one_raises(self):
        with pytest.raises(ValidationError):
            make_signal(confidence=1.01)

    def test_severity_ranks_are_ordered(self):
        assert Severity.INFO.rank < Severity.RISK.rank < Severity.CRITICAL.rank

    def test_missing_required_field_raises(self):
        with pytest.raises(ValidationError):
            Signal(org_id="acme", team_id="platform", week_start=WEEK)


# ── Catalog ───────────────────────────────────────────────────────────────────

class TestSignalTypeDefinition:
    def test_unknown_polarity_raises(self):
        with pytest.raises(ValidationError):
            SignalTypeDefinition(
                signal_type="x", label="X", category="c", metric_key="m", metric_label="M",
                polarity="sideways", consequences={}, time_to_impact={}, neutral_text="",
            )

    def test_sub_metric_weight_must_be_positive(self):
        with pytest.raises(ValidationError):
            SubMetric(key="k", label="K", weight=0.0)


# ── Intervention ──────────────────────────────────────────────────────────────

class TestIntervention:
    def make(self, **overrides) -> Intervention:
        defaults = dict(
            signal_id="s1", org_id="acme", team_id="platform", signal_type="coordination-risk",
            metric_key="meetingLoadIndex", action_taken="Meeting audit",
            start_date=WEEK, recheck_date=date(2026, 3, 16),
        )
        return Intervention(**{**defaults, **overrides})

    def test_starts_active_at_version_zero(self):
        i = self.make()
        assert i.status == InterventionStatus.ACTIVE
        assert i.version == 0
        assert i.outcome_delta is None

    def test_due_on_recheck_date(self):
        i = self.make()
        assert i.is_due(date(2026, 3, 15)) is False
        assert i.is_due(date(2026, 3, 16)) is True

    def test_pending_recheck_stays_due(self):
        assert self.make(status=InterventionStatus.PENDING_RECHECK).is_due(date(2026, 4, 1)) is True

    def test_closed_interventions_are_never_due(self):
        for status in (InterventionStatus.COMPLETED, InterventionStatus.ABANDONED, InterventionStatus.IGNORED):
            assert self.make(status=status).is_due(date(2026, 4, 1)) is False


# ── Results ───────────────────────────────────────────────────────────────────

class TestBatchResult:
    def make_outcome(self, status: UnitStatus, team_id: str = "platform") -> UnitOutcome:
        return UnitOutcome(
            org_id="acme", team_id=team_id, signal_type="coordination-risk",
            metric_key="meetingLoadIndex", week_start=WEEK, status=status,
        )

    def test_run_id_auto_generated(self):
        r = BatchResult(org_id="acme", week_start=WEEK)
        uuid.UUID(r.run_id)
        assert r.outcomes == []

    def test_counts_and_failed(self):
        r = BatchResult(
            org_id="acme",
            week_start=WEEK,
            outcomes=[
                self.make_outcome(UnitStatus.EMITTED),
                self.make_outcome(UnitStatus.SUPPRESSED, "design"),
                self.make_outcome(UnitStatus.SUPPRESSED, "support"),
                self.make_outcome(UnitStatus.FAILED, "data"),
            ],
        )
        assert r.counts() == {"emitted": 1, "suppressed": 2, "failed": 1}
        assert [o.team_id for o in r.failed] == ["data"]


# ── DetectionConfig ───────────────────────────────────────────────────────────

class TestDetectionConfig:
    def test_defaults(self):
        c = DetectionConfig()
        assert c.baseline_window_weeks == 6
        assert c.min_group_size == 8
        assert c.recheck_delay_days == 14

    def test_min_weeks_above_window_raises(self):
        with pytest.raises(ValidationError, match="min_baseline_weeks"):
            DetectionConfig(baseline_window_weeks=4, min_baseline_weeks=5)

    def test_thresholds_out_of_order_raise(self):
        with pytest.raises(ValidationError, match="critical_z"):
            DetectionConfig(risk_z=2.5, critical_z=2.0)

    def test_critical_streak_shorter_than_risk_raises(self):
        with pytest.raises(ValidationError, match="critical_weeks"):
            DetectionConfig(risk_weeks=2, critical_weeks=1, slow_burn_weeks=1)

    def test_slow_burn_shorter_than_critical_raises(self):
        with pytest.raises(ValidationError, match="slow_burn_weeks"):
            DetectionConfig(critical_weeks=3, slow_burn_weeks=2)

    def test_equal_streak_lengths_allowed(self):
        c = DetectionConfig(risk_weeks=2, critical_weeks=2, slow_burn_weeks=2)
        assert c.slow_burn_weeks == 2

    def test_from_env_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("RHYTHM_MIN_GROUP_SIZE", "5")
        monkeypatch.setenv("RHYTHM_INFO_Z", "0.5")
        monkeypatch.setenv("MIN_GROUP_SIZE", "99")
        c = DetectionConfig.from_env()
        assert c.min_group_size == 5
        assert c.info_z == 0.5

    def test_from_env_ignores_empty_values(self, monkeypatch):
        monkeypatch.setenv("RHYTHM_MIN_GROUP_SIZE", "")
        assert DetectionConfig.from_env().min_group_size == 8

    def test_from_env_bad_value_raises(self, monkeypatch):
        monkeypatch.setenv("RHYTHM_MIN_GROUP_SIZE", "many")
        with pytest.raises(ValidationError):
            DetectionConfig.from_env()

    def test_from_env_rejects_streaks_out_of_order(self, monkeypatch):
        monkeypatch.setenv("RHYTHM_CRITICAL_WEEKS", "1")
        monkeypatch.setenv("RHYTHM_SLOW_BURN_WEEKS", "1")
        with pytest.raises(ValidationError, match="critical_weeks"):
            DetectionConfig.from_env()


# ── PipelineEvent ─────────────────────────────────────────────────────────────

class TestPipelineEvent:
    def test_valid_event(self):
        e = PipelineEvent(
            unit="platform/coordination-risk",
            event_type=EventType.EMITTED,
            message="2026-03-02 RISK z=2.41, 2 week(s)",
            timestamp_ms=12.5,
        )
        assert e.event_type == EventType.EMITTED

    def test_event_type_values_are_strings(self):
        assert EventType.SUPPRESSED.value == "suppressed"
        assert PipelineEvent(
            unit="u", event_type="skipped", message="", timestamp_ms=0,
        ).model_dump(mode="json")["event_type"] == "skipped"

    def test_invalid_event_type_raises(self):
        with pytest.raises(ValidationError):
            PipelineEvent(unit="u", event_type="exploded", message="", timestamp_ms=0)
