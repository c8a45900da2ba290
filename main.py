"""Rhythm Signals — detection and intervention API.

This file handles three concerns:

1. Runs — starts a weekly detection run (or a backfill) for an org as a
   background task so the caller gets its run_id immediately.

2. Signals — read access to emitted signals, plus the human-owned status
   and owner updates.

3. Interventions — log an action on a signal, recheck it when due,
   acknowledge the outcome, or abandon it.

Flow for a weekly run:
    POST /runs
        → validate request
        → create pending RunRecord
        → start background task
        → return 202 + run_id immediately

    background task:
        → DetectionRuntime.run_week() / backfill()
        → update RunRecord to status="complete" (or "failed")

    consumers poll:
        GET /runs/{run_id}, then GET /signals?org_id=...

Run locally:
    uv run uvicorn main:app --reload
"""

import logging
import logging.handlers
import os
import pathlib
import uuid
from datetime import date, datetime, timezone
from typing import Literal

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError, field_validator

load_dotenv()

from core.config import DetectionConfig
from core.errors import (
    ConcurrentUpdateError,
    DetectionError,
    InvalidTransition,
    MissingBaselineError,
    ProviderUnavailable,
    RecordNotFound,
    StaleRecheckRead,
)
from core.runtime import DetectionRuntime
from core.store import InMemoryStore
from integrations.providers import provider_from_env
from judge.guardrail import PrivacyGuardrail
from outcomes import InterventionService, OutcomeTracker
from outcomes.tracker import as_of
from schemas.intervention import Intervention, InterventionStatus
from schemas.result import UnitOutcome
from schemas.signal import OutcomeRating, Signal, SignalStatus
from utils.weeks import previous_week, week_start_of

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FILE = pathlib.Path(__file__).parent / "rhythm_signals.log"
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handler = logging.handlers.RotatingFileHandler(
    LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
)
_file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

_root_logger = logging.getLogger()
_root_logger.setLevel(logging.INFO)
_root_logger.addHandler(_file_handler)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App + CORS
# ---------------------------------------------------------------------------

app = FastAPI(title="Rhythm Signals")

# ALLOWED_ORIGINS env var overrides the default for production deployments.
_origins = os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Runtime setup
# ---------------------------------------------------------------------------

config = DetectionConfig.from_env()
store = InMemoryStore()
provider = provider_from_env()
runtime = DetectionRuntime(provider, store=store, config=config)
interventions = InterventionService(store, config)
tracker = OutcomeTracker(store, provider, PrivacyGuardrail(config))

# ---------------------------------------------------------------------------
# Request / record models
# ---------------------------------------------------------------------------

class RunRequest(BaseModel):
    """Body of POST /runs.

    week_start defaults to the last completed week. Setting backfill_from
    turns the run into a backfill from that week up to week_start.
    """
    org_id: str
    week_start: date | None = None
    backfill_from: date | None = None
    team_ids: list[str] | None = None
    signal_types: list[str] | None = None


class RunRecord(BaseModel):
    """A single detection run, as callers poll for it.

    status lifecycle:
        "pending"  → created when the request arrives, before the run starts
        "complete" → run finished, counts and signal_ids populated
        "failed"   → run raised before producing a result, error is set
    """
    run_id: str
    status: Literal["pending", "complete", "failed"]
    org_id: str
    weeks: list[date] = []
    counts: dict[str, int] = {}
    signal_ids: list[str] = []
    failed_units: list[UnitOutcome] = []
    error: str | None = None
    created_at: str = ""


class SignalPatch(BaseModel):
    """Body of PATCH /signals/{id}.

    Omitted fields are left alone. owner may be cleared with null; status may not.
    """
    status: SignalStatus | None = None
    owner: str | None = None

    @field_validator("status")
    @classmethod
    def _status_not_null(cls, value: SignalStatus | None) -> SignalStatus:
        if value is None:
            raise ValueError("status cannot be null.")
        return value


class InterventionCreate(BaseModel):
    signal_id: str
    action_taken: str = Field(min_length=1)
    metric_before: float | None = None
    action_id: str | None = None
    created_by: str | None = None
    start_date: date | None = None


class OutcomeAcknowledge(BaseModel):
    user_notes: str
    user_assessment: OutcomeRating | None = None
    metric_after: float | None = None
    acknowledged_by: str | None = None


# In-memory run records: run_id → RunRecord. Lost on restart.
_runs: dict[str, RunRecord] = {}


def _http_error(exc: DetectionError) -> HTTPException:
    """Map a domain error to the HTTP status callers should see."""
    if isinstance(exc, RecordNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (InvalidTransition, ConcurrentUpdateError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ProviderUnavailable):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))


# ---------------------------------------------------------------------------
# Background run task
# ---------------------------------------------------------------------------

async def _execute_run(run_id: str, request: RunRequest, weeks: list[date]) -> None:
    """Run detection and update the run record.

    All failures are caught and recorded as status="failed" so callers
    always get a terminal state rather than a record stuck on "pending".
    """
    try:
        if request.backfill_from is not None:
            result = await runtime.backfill(
                request.org_id, weeks[0], weeks[-1],
                team_ids=request.team_ids, signal_types=request.signal_types,
            )
        else:
            result = await runtime.run_week(
                request.org_id, weeks[-1],
                team_ids=request.team_ids, signal_types=request.signal_types,
            )

        _runs[run_id] = _runs[run_id].model_copy(update={
            "status": "complete",
            "weeks": result.weeks,
            "counts": result.counts(),
            "signal_ids": [s.id for s in result.signals],
            "failed_units": result.failed,
        })

    except Exception as exc:
        logger.error("Run %s failed: %s", run_id, exc)
        _runs[run_id] = _runs[run_id].model_copy(update={"status": "failed", "error": str(exc)})


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok", "signal_types": len(runtime.registry)}


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

@app.post("/runs", status_code=202)
async def start_run(request: RunRequest, background_tasks: BackgroundTasks):
    """Create a pending run record and start detection in the background."""
    week = week_start_of(request.week_start) if request.week_start else previous_week(
        week_start_of(datetime.now(timezone.utc))
    )
    if request.backfill_from is not None and week_start_of(request.backfill_from) > week:
        raise HTTPException(status_code=400, detail="backfill_from must not be after week_start.")
    for signal_type in request.signal_types or []:
        if runtime.registry.get(signal_type) is None:
            raise HTTPException(status_code=422, detail=f"Unknown signal type '{signal_type}'.")

    weeks = [week_start_of(request.backfill_from), week] if request.backfill_from else [week]
    run_id = str(uuid.uuid4())
    _runs[run_id] = RunRecord(
        run_id=run_id,
        status="pending",
        org_id=request.org_id,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    logger.info("Accepted run %s for org '%s' (weeks %s to %s).", run_id, request.org_id, weeks[0], weeks[-1])

    background_tasks.add_task(_execute_run, run_id, request, weeks)
    return {"run_id": run_id, "status": "pending"}


@app.get("/runs/{run_id}", response_model=RunRecord)
def get_run(run_id: str):
    if run_id not in _runs:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found.")
    return _runs[run_id]


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

@app.get("/signals", response_model=list[Signal])
def list_signals(
    org_id: str | None = None,
    team_id: str | None = None,
    signal_type: str | None = None,
    status: SignalStatus | None = None,
    week_start: date | None = None,
):
    return store.list_signals(
        org_id=org_id,
        team_id=team_id,
        signal_type=signal_type,
        status=status,
        week_start=week_start,
    )


@app.get("/signals/{signal_id}", response_model=Signal)
def get_signal(signal_id: str):
    signal = store.get_signal(signal_id)
    if signal is None:
        raise HTTPException(status_code=404, detail=f"Signal '{signal_id}' not found.")
    return signal


@app.patch("/signals/{signal_id}", response_model=Signal)
def update_signal(signal_id: str, patch: SignalPatch):
    """Update the human-owned fields of a signal. Statistics are read-only."""
    changes = patch.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update.")
    try:
        return store.update_signal(signal_id, **changes)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except DetectionError as exc:
        raise _http_error(exc)


# ---------------------------------------------------------------------------
# Interventions
# ---------------------------------------------------------------------------

@app.post("/interventions", response_model=Intervention, status_code=201)
def create_intervention(body: InterventionCreate):
    try:
        return interventions.create_from_signal(
            body.signal_id,
            body.action_taken,
            metric_before=body.metric_before,
            action_id=body.action_id,
            created_by=body.created_by,
            start_date=body.start_date,
        )
    except DetectionError as exc:
        raise _http_error(exc)


@app.get("/interventions", response_model=list[Intervention])
def list_interventions(
    org_id: str | None = None,
    team_id: str | None = None,
    signal_id: str | None = None,
    status: InterventionStatus | None = None,
):
    return store.list_interventions(
        org_id=org_id,
        team_id=team_id,
        signal_id=signal_id,
        status=status,
    )


@app.get("/interventions/due", response_model=list[Intervention])
def list_due_interventions(on: date | None = None):
    """Interventions whose recheck date has arrived (as of `on`, default now)."""
    return tracker.due(as_of(on) if on else None)


@app.post("/interventions/recheck-due")
async def recheck_due_interventions(on: date | None = None):
    """Scheduler tick: mark every due intervention pending and recheck it."""
    report = await tracker.run_due(as_of(on) if on else None)
    return {
        "completed": report.completed,
        "pending": report.pending,
        "failed": report.failed,
    }


@app.get("/interventions/{intervention_id}", response_model=Intervention)
def get_intervention(intervention_id: str):
    intervention = store.get_intervention(intervention_id)
    if intervention is None:
        raise HTTPException(status_code=404, detail=f"Intervention '{intervention_id}' not found.")
    return intervention


@app.post("/interventions/{intervention_id}/recheck")
async def recheck_intervention(intervention_id: str, on: date | None = None):
    """Recheck one intervention now.

    An intervention that cannot be computed yet is not an error for the
    caller: the response says it is still awaiting data.
    """
    try:
        outcome = await tracker.recheck(intervention_id, as_of(on) if on else None)
    except (MissingBaselineError, StaleRecheckRead) as exc:
        return {
            "intervention_id": intervention_id,
            "status": InterventionStatus.PENDING_RECHECK.value,
            "reason": str(exc),
        }
    except DetectionError as exc:
        raise _http_error(exc)

    return {
        "intervention_id": intervention_id,
        "status": InterventionStatus.COMPLETED.value,
        "outcome_delta": outcome.model_dump(mode="json"),
    }


@app.put("/interventions/{intervention_id}/outcome", response_model=Intervention)
def acknowledge_outcome(intervention_id: str, body: OutcomeAcknowledge):
    try:
        return interventions.acknowledge(
            intervention_id,
            body.user_notes,
            user_assessment=body.user_assessment,
            metric_after=body.metric_after,
            acknowledged_by=body.acknowledged_by,
        )
    except DetectionError as exc:
        raise _http_error(exc)


@app.delete("/interventions/{intervention_id}", response_model=Intervention)
def abandon_intervention(intervention_id: str):
    try:
        return interventions.abandon(intervention_id)
    except DetectionError as exc:
        raise _http_error(exc)

