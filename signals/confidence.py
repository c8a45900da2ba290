"""Confidence Scorer.

Blends four factors into one confidence value with a weighted geometric
mean. A factor of zero makes the composite zero: one catastrophically bad
input cannot be averaged away by three good ones.
"""

import math

from schemas.deviation import Deviation
from schemas.observation import MetricObservation
from schemas.signal import ConfidenceFactors

DEFAULT_WEIGHTS = {
    "data_coverage": 0.25,
    "baseline_confidence": 0.25,
    "sustain_factor": 0.25,
    "source_quality": 0.25,
}

SUSTAINED_FACTOR = 1.0
BUILDING_FACTOR = 0.5

MULTI_SOURCE_QUALITY = 1.0
SINGLE_SOURCE_QUALITY = 0.7
SPARSE_SOURCE_QUALITY = 0.5


def sustain_factor(deviation: Deviation) -> float:
    """Full credit once the streak has met a severity's week requirement."""
    if deviation.meets_risk or deviation.meets_critical:
        return SUSTAINED_FACTOR
    return BUILDING_FACTOR


def source_quality(observation: MetricObservation) -> float:
    """Score the sources behind the week: corroborated, single, or sparse."""
    primary = observation.primary_source_count
    if primary >= 2:
        return MULTI_SOURCE_QUALITY
    if primary == 1:
        return SINGLE_SOURCE_QUALITY
    return SPARSE_SOURCE_QUALITY


class ConfidenceScorer:
    """Weighted geometric mean over ConfidenceFactors.

    Weights are normalised to sum to 1, so the composite stays in [0, 1]
    and is non-decreasing in every factor.
    """

    def __init__(self, weights: dict[str, float] | None = None) -> None:
        weights = dict(weights or DEFAULT_WEIGHTS)
        if set(weights) != set(DEFAULT_WEIGHTS):
            raise ValueError(f"Weights must cover exactly {sorted(DEFAULT_WEIGHTS)}.")
        if any(w <= 0 for w in weights.values()):
            raise ValueError("Confidence weights must be positive.")
        total = sum(weights.values())
        self.weights = {name: w / total for name, w in weights.items()}

    def factors_for(
        self,
        observation: MetricObservation,
        baseline_confidence: float,
        deviation: Deviation,
    ) -> ConfidenceFactors:
        return ConfidenceFactors(
            data_coverage=observation.data_coverage,
            baseline_confidence=baseline_confidence,
            sustain_factor=sustain_factor(deviation),
            source_quality=source_quality(observation),
        )

    def score(self, factors: ConfidenceFactors) -> float:
        """Return the composite confidence, rounded to 4 places."""
        values = factors.model_dump()
        if any(values[name] <= 0 for name in self.weights):
            return 0.0
        log_mean = sum(w * math.log(values[name]) for name, w in self.weights.items())
        return round(min(max(math.exp(log_mean), 0.0), 1.0), 4)
