"""
Error taxonomy shared by the fetch controller, the Reddit client and the proxy.

Every FetchError carries a ``kind`` tag and a user-facing message.
FetchCancelled is not a FetchError; ``except FetchError`` never catches it.
"""

from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """Base class for failures that are shown to the user."""

    kind = "error"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(FetchError):
    """Input rejected before any network call."""

    kind = "validation"


class TransportError(FetchError):
    """Network failure, DNS error or timeout."""

    kind = "transport"


class NotFoundError(FetchError):
    """404 while browsing a subreddit."""

    kind = "not_found"


class UpstreamStatusError(FetchError):
    """Any other non-success HTTP status."""

    kind = "upstream_status"

    def __init__(self, message: str, status: Optional[int] = None, reason: str = ""):
        super().__init__(message, status=status)
        self.reason = reason


class MalformedPayloadError(FetchError):
    """Body was not JSON, or JSON without the expected shape."""

    kind = "malformed_payload"


class ExhaustedError(FetchError):
    """Proxy only: every preset and the RSS fallback failed."""

    kind = "exhausted"

    def __init__(self, message: str, details: str = ""):
        super().__init__(message, status=502)
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details, "kind": self.kind}


class FetchCancelled(Exception):
    """Raised inside a session once it has been superseded or closed."""
