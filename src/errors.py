"""
Error taxonomy for Social Timeline

Adapters translate library exceptions into these types so the orchestrator
can report failures without knowing which backend produced them.
"""

from typing import Optional


class SocialTimelineError(Exception):
    """Base class for all errors raised by the timeline core."""

    pass


class CredentialError(SocialTimelineError):
    """Raised when a secret is missing or cannot be read."""

    pass


class TransportError(SocialTimelineError):
    """Raised when the remote could not be reached (DNS, timeout, TLS)."""

    pass


class ProtocolError(SocialTimelineError):
    """Raised when the backend answered with a non-success response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_text: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_text = error_text


class DecodeError(SocialTimelineError):
    """Raised when a response does not match the expected schema."""

    pass


class PreconditionError(SocialTimelineError):
    """Raised before any network call when required post data is absent."""

    pass
