"""
Domain error taxonomy.
Every error carries a stable `kind` and the HTTP status used when it reaches the API boundary.
"""
from typing import Optional


class CaixaError(Exception):
    """Base class for every error surfaced by the simulator."""

    kind = "Error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


class InvalidParameter(CaixaError):
    """Local precondition violation. Always caller-correctable."""

    kind = "InvalidParameter"
    status_code = 400


class NotReconciled(CaixaError):
    """Store rejected a simulation that is not in the confirmed state."""

    kind = "NotReconciled"
    status_code = 409


class RemoteError(CaixaError):
    """Anything that went wrong talking to the remote authority."""

    kind = "RemoteError"
    status_code = 502


class RemoteBlocked(RemoteError):
    """Anti-automation defense page or an error status from the remote."""

    kind = "RemoteBlocked"


class NoEligibleProduct(RemoteError):
    kind = "NoEligibleProduct"


class NoQuoteReturned(RemoteError):
    kind = "NoQuoteReturned"


class InvalidQuote(RemoteError):
    kind = "InvalidQuote"


class DecodeError(RemoteError):
    """Batched-call response did not have the expected shape."""

    kind = "DecodeError"

    def __init__(self, message: str, reason: str, fragment: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.fragment = fragment

    def to_payload(self) -> dict:
        # The raw fragment is remote content and stays in the logs only
        return {"detail": self.message, "kind": self.kind, "reason": self.reason}


class RemoteTimeout(RemoteError):
    kind = "Timeout"
    status_code = 504


class RemoteNetworkError(RemoteError):
    kind = "NetworkError"


class RequestCancelled(RemoteError):
    """Caller aborted the session before it finished."""

    kind = "Cancelled"
    status_code = 499
