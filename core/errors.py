"""Error taxonomy.

Statistical edge cases never surface as exceptions to the batch. A thin
history is an INSUFFICIENT_BASELINE outcome, a privacy block is a SUPPRESSED
outcome, and a constant baseline yields a zero-magnitude deviation flagged as
degenerate. The types here are for conditions a caller or scheduler has to
act on: retry, manual entry, or a 4xx response.
"""


class DetectionError(Exception):
    """Base class for every error raised by this package."""


class MissingBaselineError(DetectionError):
    """Recheck cannot compute a percent change: metric_before is 0 or absent.

    Fatal for the recheck attempt. The intervention stays pending-recheck
    so a person can enter the outcome manually.
    """


class StaleRecheckRead(DetectionError):
    """No completed week with data exists yet after the intervention started.

    Recoverable. The intervention stays pending-recheck and the next
    scheduler tick tries again.
    """


class ProviderUnavailable(DetectionError):
    """The metric series provider could not be reached or returned garbage."""


class ConcurrentUpdateError(DetectionError):
    """A compare-and-set write lost to a concurrent writer."""

    def __init__(self, record_id: str, expected: int, actual: int):
        super().__init__(
            f"Record '{record_id}' changed concurrently "
            f"(expected version {expected}, found {actual})."
        )
        self.record_id = record_id
        self.expected = expected
        self.actual = actual


class RecordNotFound(DetectionError):
    """A signal or intervention ID does not exist in the store."""


class UnknownSignalType(DetectionError):
    """A signal type is not in the catalog."""


class InvalidTransition(DetectionError):
    """A status change is not allowed from the record's current status."""
