"""Polarity table.

Whether a drop or a rise in a signal type's headline metric counts as an
improvement. This is an explicit mapping, consulted by the emitter (is the
drift adverse?) and by the Outcome Tracker (did the intervention help?).
Nothing infers polarity from metric names or sign conventions.
"""

from enum import Enum

from core.errors import UnknownSignalType


class Polarity(str, Enum):
    LOWER_IS_BETTER = "lower_is_better"
    HIGHER_IS_BETTER = "higher_is_better"


POLARITY_TABLE: dict[str, Polarity] = {
    "coordination-risk": Polarity.LOWER_IS_BETTER,   # meeting load
    "boundary-erosion": Polarity.LOWER_IS_BETTER,    # after-hours activity
    "execution-drag": Polarity.LOWER_IS_BETTER,      # response latency
    "handoff-bottleneck": Polarity.LOWER_IS_BETTER,  # handoff delay
    "focus-erosion": Polarity.HIGHER_IS_BETTER,      # focus time
    "dependency-spread": Polarity.HIGHER_IS_BETTER,  # collaboration breadth
    "morale-volatility": Polarity.HIGHER_IS_BETTER,  # sentiment score
    "recovery-deficit": Polarity.HIGHER_IS_BETTER,   # recovery score
}


def polarity_of(signal_type: str) -> Polarity:
    """Look up the polarity for a signal type.

    Raises:
        UnknownSignalType: If the type has no entry. A missing entry is a
            catalog error, never a reason to guess.
    """
    try:
        return POLARITY_TABLE[signal_type]
    except KeyError:
        raise UnknownSignalType(f"No polarity defined for signal type '{signal_type}'.") from None


def is_improvement(signal_type: str, percent_change: float) -> bool:
    """Return True if percent_change moves the metric in the good direction.

    A change of exactly zero is never an improvement.
    """
    if polarity_of(signal_type) is Polarity.LOWER_IS_BETTER:
        return percent_change < 0
    return percent_change > 0


def is_adverse(signal_type: str, direction: int) -> bool:
    """Return True if a deviation in direction (-1, 0, 1) is the bad way."""
    if direction == 0:
        return False
    if polarity_of(signal_type) is Polarity.LOWER_IS_BETTER:
        return direction > 0
    return direction < 0
