"""Error taxonomy for webhook handling.

Benign outcomes (not synced, echo, nothing to do) are plain strings returned by
the handlers. Everything that should surface to the webhook caller as a
non-2xx response is a ``SyncError`` carrying its HTTP status.
"""


class SyncError(Exception):
    """Base class for failures that abort a webhook delivery."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(SyncError):
    """No sync matches the event and no fallback credential is available."""

    status_code = 404


class VerificationError(SyncError):
    """Bad signature or disallowed origin."""

    status_code = 403


class PropagationError(SyncError):
    """A required counterpart step failed."""

    status_code = 500
