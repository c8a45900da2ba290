"""Privacy guardrail.

The PrivacyGuardrail decides whether a team-week may be reported at all.
It runs before severity, confidence, and drivers are computed, so nothing
downstream ever sees sub-threshold team data.

All checks are deterministic. The guardrail reports a verdict; the pipeline
turns a failed verdict into a SUPPRESSED outcome. Suppression is not a
low-confidence signal and no other component can override it.
"""

from dataclasses import dataclass

from core.config import DetectionConfig
from schemas.observation import MetricObservation


@dataclass
class GuardrailVerdict:
    """The guardrail's decision for one observation.

    A dataclass rather than a Pydantic model because it is an internal
    pipeline object. Only its reason reaches the audit trail.

    Attributes:
        passed: True if the observation may flow downstream.
        observation: The observation that was checked.
        reason: Description of the first check that failed. None if passed.
    """

    passed: bool
    observation: MetricObservation
    reason: str | None = None


class PrivacyGuardrail:
    """Blocks team-weeks below the configured population and coverage floors.

    Fails fast: the first failing check produces the verdict.

    Attributes:
        min_group_size: Smallest active population that may be reported.
        min_data_coverage: Smallest share of the population with data.
        min_sample_size: Smallest number of underlying data points.
    """

    def __init__(self, config: DetectionConfig | None = None) -> None:
        config = config or DetectionConfig()
        self.min_group_size = config.min_group_size
        self.min_data_coverage = config.min_data_coverage
        self.min_sample_size = config.min_sample_size

    def check(self, observation: MetricObservation) -> GuardrailVerdict:
        """Run the three privacy checks against one week's observation.

        Args:
            observation: The evaluated week for one (team, metric).

        Returns:
            GuardrailVerdict with passed=True, or passed=False and the
            reason of the first failed check.
        """

        # Check 1 — group size. Small teams make team-level numbers
        # attributable to individuals.
        if observation.active_population < self.min_group_size:
            return GuardrailVerdict(
                passed=False,
                observation=observation,
                reason=(
                    f"active population {observation.active_population} is below "
                    f"the minimum group size {self.min_group_size}."
                ),
            )

        # Check 2 — coverage. A value built from a few members' data speaks
        # for those members, not for the team.
        if observation.data_coverage < self.min_data_coverage:
            return GuardrailVerdict(
                passed=False,
                observation=observation,
                reason=(
                    f"data coverage {observation.data_coverage:.2f} is below "
                    f"the minimum {self.min_data_coverage:.2f}."
                ),
            )

        # Check 3 — sample floor.
        if observation.sample_size < self.min_sample_size:
            return GuardrailVerdict(
                passed=False,
                observation=observation,
                reason=(
                    f"sample size {observation.sample_size} is below "
                    f"the minimum {self.min_sample_size}."
                ),
            )

        return GuardrailVerdict(passed=True, observation=observation)
