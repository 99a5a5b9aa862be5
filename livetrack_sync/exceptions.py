"""
Custom exceptions for live tracking sync.

Transport, codec and sensor components raise these exceptions so callers
can tell recoverable conditions apart. None of them is fatal: the transport
client turns TransportError into a reconnect, the controller drops
MalformedFrameError, and the sampler reports SensorError as a status.
"""


class LiveTrackError(Exception):
    """Base exception for all live tracking errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransportError(LiveTrackError):
    """Raised when the broker connection is refused, lost or closed abruptly."""

    def __init__(self, endpoint: str, cause: Exception | None = None, reason: str | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        if reason:
            details["reason"] = reason
        message = f"Transport failure on {endpoint}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.endpoint = endpoint
        self.cause = cause
        self.reason = reason


class MalformedFrameError(LiveTrackError):
    """Raised when a frame or a domain payload cannot be decoded."""

    def __init__(self, reason: str, raw: str | None = None):
        details = {"reason": reason}
        if raw is not None:
            # Frames can be arbitrary broker traffic; keep the preview short.
            details["raw"] = raw[:200]
        super().__init__(f"Malformed frame: {reason}", details)
        self.reason = reason
        self.raw = raw


class SensorError(LiveTrackError):
    """Raised by a location sensor when no sample is available."""

    def __init__(self, message: str, code: str | None = None):
        details = {}
        if code:
            details["code"] = code
        super().__init__(message, details)
        self.code = code


class ConfigurationError(LiveTrackError):
    """Raised when configuration values are invalid."""

    def __init__(self, message: str, field: str | None = None):
        details = {}
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field
