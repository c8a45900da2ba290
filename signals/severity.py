"""Severity Classifier.

A pure function evaluated fresh every week. Escalation history lives in the
deviation streak, not here: a direction flip resets the streak upstream,
which already clears meets_critical before this function sees it.
"""

from schemas.signal import Severity


def classify_severity(meets_risk: bool, meets_critical: bool, confidence: float) -> Severity:
    """Map the derived deviation flags to a severity.

    CRITICAL requires meets_critical; otherwise RISK requires meets_risk;
    otherwise INFO. confidence is validated but does not move the level:
    low confidence is reported alongside the severity, not folded into it.

    Raises:
        ValueError: If confidence is outside [0, 1].
    """
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"confidence must be within [0, 1], got {confidence}.")
    if meets_critical:
        return Severity.CRITICAL
    if meets_risk:
        return Severity.RISK
    return Severity.INFO
