"""Intervention commands and outcome tracking."""

from outcomes.interventions import InterventionService
from outcomes.tracker import OutcomeTracker, RecheckReport, compute_outcome

__all__ = ["InterventionService", "OutcomeTracker", "RecheckReport", "compute_outcome"]
