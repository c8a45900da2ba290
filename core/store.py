"""In-memory record store.

InMemoryStore implements the persistence contract the pipeline and the
intervention commands rely on:

- Signals are unique per natural key (org, team, signal type, week). Writes
  go through upsert_signal(), which only ever touches the pipeline-owned
  statistical fields of an existing record.
- DeviationState is committed per (org, team, metric, week) so each weekly
  run can resume the sustained-weeks fold from the previous week.
- Interventions are written with optimistic compare-and-set on version.
- Unit outcomes are appended to an audit trail and never rewritten.

Every public method takes the lock for the duration of one operation only,
and every getter returns a copy. Lost on restart: swap for a database-backed
implementation of the same methods when persistence matters.
"""

import logging
import threading
from datetime import date, datetime, timezone
from enum import Enum

from core.errors import ConcurrentUpdateError, RecordNotFound
from schemas.deviation import DeviationState
from schemas.intervention import Intervention, InterventionStatus
from schemas.result import UnitOutcome
from schemas.signal import STATISTICAL_FIELDS, Signal, SignalStatus

logger = logging.getLogger(__name__)

# Fields owned by the people acting on a signal. The pipeline never writes them.
HUMAN_FIELDS = frozenset({"status", "owner", "selected_intervention_id", "outcome"})


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class InMemoryStore:
    """Thread-safe in-memory implementation of the persistence contract."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._signals: dict[str, Signal] = {}
        self._signal_keys: dict[tuple[str, str, str, date], str] = {}
        self._states: dict[tuple[str, str, str], dict[date, DeviationState]] = {}
        self._interventions: dict[str, Intervention] = {}
        self._audit: list[UnitOutcome] = []

    # ── Signals ──────────────────────────────────────────────────────────────

    def upsert_signal(self, signal: Signal) -> tuple[Signal, UpsertOutcome]:
        """Insert a signal or refresh the statistical fields of an existing one.

        The natural key decides identity. On a match, the stored record keeps
        its id, created_at, and every human-owned field; only the statistical
        fields are replaced, and only if they differ.

        Args:
            signal: Freshly assembled signal from the emitter.

        Returns:
            The stored signal (a copy) and whether it was created, updated,
            or left unchanged.
        """
        incoming = signal.model_copy(deep=True)
        with self._lock:
            existing_id = self._signal_keys.get(incoming.natural_key)

            if existing_id is None:
                self._signals[incoming.id] = incoming
                self._signal_keys[incoming.natural_key] = incoming.id
                return incoming.model_copy(deep=True), UpsertOutcome.CREATED

            existing = self._signals[existing_id]
            if existing.statistical_fields() == incoming.statistical_fields():
                return existing.model_copy(deep=True), UpsertOutcome.UNCHANGED

            updates = {name: getattr(incoming, name) for name in STATISTICAL_FIELDS}
            updates["updated_at"] = datetime.now(timezone.utc)
            merged = existing.model_copy(update=updates)
            self._signals[existing_id] = merged
            return merged.model_copy(deep=True), UpsertOutcome.UPDATED

    def get_signal(self, signal_id: str) -> Signal | None:
        with self._lock:
            signal = self._signals.get(signal_id)
            return signal.model_copy(deep=True) if signal else None

    def get_signal_by_key(
        self,
        org_id: str,
        team_id: str,
        signal_type: str,
        week_start: date,
    ) -> Signal | None:
        with self._lock:
            signal_id = self._signal_keys.get((org_id, team_id, signal_type, week_start))
            return self._signals[signal_id].model_copy(deep=True) if signal_id else None

    def list_signals(
        self,
        org_id: str | None = None,
        team_id: str | None = None,
        signal_type: str | None = None,
        status: SignalStatus | None = None,
        week_start: date | None = None,
    ) -> list[Signal]:
        """Return matching signals ordered by week, team, then signal type."""
        with self._lock:
            matches = [
                s.model_copy(deep=True)
                for s in self._signals.values()
                if (org_id is None or s.org_id == org_id)
                and (team_id is None or s.team_id == team_id)
                and (signal_type is None or s.signal_type == signal_type)
                and (status is None or s.status == status)
                and (week_start is None or s.week_start == week_start)
            ]
        matches.sort(key=lambda s: (s.week_start, s.team_id, s.signal_type))
        return matches

    def update_signal(self, signal_id: str, **changes) -> Signal:
        """Apply human-owned field changes to a signal.

        The merged record is validated again, so a change can never store a
        value the Signal schema would reject.

        Raises:
            RecordNotFound: If the signal does not exist.
            ValueError: If a change targets a field the pipeline owns.
            ValidationError: If a changed value is invalid for its field.
        """
        forbidden = set(changes) - HUMAN_FIELDS
        if forbidden:
            raise ValueError(f"Fields {sorted(forbidden)} cannot be changed after emission.")

        with self._lock:
            signal = self._signals.get(signal_id)
            if signal is None:
                raise RecordNotFound(f"Signal '{signal_id}' not found.")
            updated = Signal.model_validate({
                **signal.model_dump(),
                **changes,
                "updated_at": datetime.now(timezone.utc),
            })
            self._signals[signal_id] = updated
            return updated.model_copy(deep=True)

    # ── Deviation state ──────────────────────────────────────────────────────

    def save_state(self, state: DeviationState) -> None:
        key = (state.org_id, state.team_id, state.metric_key)
        with self._lock:
            self._states.setdefault(key, {})[state.week_start] = state.model_copy()

    def get_state(
        self,
        org_id: str,
        team_id: str,
        metric_key: str,
        week_start: date,
    ) -> DeviationState | None:
        with self._lock:
            state = self._states.get((org_id, team_id, metric_key), {}).get(week_start)
            return state.model_copy() if state else None

    def latest_state_before(
        self,
        org_id: str,
        team_id: str,
        metric_key: str,
        week_start: date,
    ) -> DeviationState | None:
        """Return the most recent committed state strictly before week_start."""
        with self._lock:
            states = self._states.get((org_id, team_id, metric_key), {})
            earlier = [w for w in states if w < week_start]
            return states[max(earlier)].model_copy() if earlier else None

    # ── Interventions ────────────────────────────────────────────────────────

    def add_intervention(self, intervention: Intervention) -> Intervention:
        with self._lock:
            if intervention.id in self._interventions:
                raise ValueError(f"Intervention '{intervention.id}' already exists.")
            self._interventions[intervention.id] = intervention.model_copy(deep=True)
            return intervention.model_copy(deep=True)

    def get_intervention(self, intervention_id: str) -> Intervention | None:
        with self._lock:
            intervention = self._interventions.get(intervention_id)
            return intervention.model_copy(deep=True) if intervention else None

    def list_interventions(
        self,
        org_id: str | None = None,
        team_id: str | None = None,
        signal_id: str | None = None,
        status: InterventionStatus | None = None,
    ) -> list[Intervention]:
        """Return matching interventions ordered by recheck date, then creation."""
        with self._lock:
            matches = [
                i.model_copy(deep=True)
                for i in self._interventions.values()
                if (org_id is None or i.org_id == org_id)
                and (team_id is None or i.team_id == team_id)
                and (signal_id is None or i.signal_id == signal_id)
                and (status is None or i.status == status)
            ]
        matches.sort(key=lambda i: (i.recheck_date, i.created_at))
        return matches

    def compare_and_set_intervention(
        self,
        intervention_id: str,
        expected_version: int,
        changes: dict,
    ) -> Intervention:
        """Apply changes only if the stored version still matches.

        Raises:
            RecordNotFound: If the intervention does not exist.
            ConcurrentUpdateError: If another writer got there first.
        """
        with self._lock:
            current = self._interventions.get(intervention_id)
            if current is None:
                raise RecordNotFound(f"Intervention '{intervention_id}' not found.")
            if current.version != expected_version:
                raise ConcurrentUpdateError(intervention_id, expected_version, current.version)
            updated = current.model_copy(update={**changes, "version": current.version + 1})
            self._interventions[intervention_id] = updated
            return updated.model_copy(deep=True)

    # ── Audit trail ──────────────────────────────────────────────────────────

    def record_outcome(self, outcome: UnitOutcome) -> None:
        with self._lock:
            self._audit.append(outcome.model_copy())

    def audit_trail(
        self,
        org_id: str | None = None,
        week_start: date | None = None,
    ) -> list[UnitOutcome]:
        with self._lock:
            return [
                o.model_copy()
                for o in self._audit
                if (org_id is None or o.org_id == org_id)
                and (week_start is None or o.week_start == week_start)
            ]
