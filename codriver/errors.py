"""Error types raised by the co-driver core.

None of these escape the tick loop: the scheduler and tracker catch and log
them, degrading to "no command this tick".
"""

from typing import Optional


class CoDriverError(Exception):
    """Base class for co-driver errors."""


class InputError(CoDriverError, ValueError):
    """Malformed or too-short input (empty polyline, bad event, bad fix)."""


class GeometryDegenerate(CoDriverError):
    """Zero-length segment; skipped when computing bearings."""


class TelemetryRejected(CoDriverError):
    """A vehicle fix failed the accuracy, throttle or jump filter."""

    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        message = reason if detail is None else f"{reason}: {detail}"
        super().__init__(message)


class AnnouncerUnavailable(CoDriverError):
    """Delivery to the announcer failed. The phase still advances."""


class StateInconsistency(CoDriverError):
    """Attempted to move an event back to an earlier warning phase."""
