"""Bridge error taxonomy.

Only NotFoundAction and MalformedRequest ever reach a caller, as failed
response envelopes. Everything else is contained where it happens and
logged.
"""

from typing import Optional

# Response retcodes
RETCODE_OK = 0
RETCODE_ASYNC = 1
RETCODE_RUNTIME_FAILED = 102
RETCODE_MALFORMED = 1400
RETCODE_NOT_FOUND = 1404


class BridgeError(Exception):
    """Base class for bridge errors."""
    pass


# ────────────────────────────────────────────────────────────
# Surfaced to the caller
# ────────────────────────────────────────────────────────────

class RequestError(BridgeError):
    """A request the bridge refuses to route."""

    retcode: int = RETCODE_MALFORMED
    http_status: int = 400
    default_message: str = "malformed request"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundAction(RequestError):
    """Action name not in the routable table."""

    retcode = RETCODE_NOT_FOUND
    http_status = 404
    default_message = "unsupported action"


class MalformedRequest(RequestError):
    """Unparseable payload or schema violation."""

    retcode = RETCODE_MALFORMED
    http_status = 400
    default_message = "malformed request"


# ────────────────────────────────────────────────────────────
# Contained (logged, never surfaced)
# ────────────────────────────────────────────────────────────

class TransportFailure(BridgeError):
    """Send, connect or POST failed."""
    pass


class FilterEvaluationFailure(BridgeError):
    """Rule evaluation raised; the event is treated as non-matching."""
    pass


class FilterLoadFailure(BridgeError):
    """Filter file could not be loaded; filtering is disabled."""
    pass


class RuntimeCallError(BridgeError):
    """Raised by a runtime method to report a structured failure."""

    def __init__(self, message: str, code: int = RETCODE_RUNTIME_FAILED):
        self.code = code
        self.message = message
        super().__init__(message)


_HTTP_STATUS = {
    NotFoundAction.retcode: NotFoundAction.http_status,
    MalformedRequest.retcode: MalformedRequest.http_status,
}


def http_status_for(response) -> int:
    """Map a response envelope to the HTTP status the transport answers with."""
    if response.status == "failed":
        return _HTTP_STATUS.get(response.retcode, 200)
    return 200
