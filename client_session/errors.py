"""
Error taxonomy for the session lifecycle.
ProviderError is recoverable by re-login or retry; Unauthenticated means "prompt login".
"""


class SessionError(Exception):
    """Base class for client session errors."""


class ProviderError(SessionError):
    """Identity provider returned an error or an unusable response."""

    def __init__(self, error: str, error_description: str | None = None):
        self.error = error
        self.error_description = error_description
        super().__init__(f"{error}: {error_description}" if error_description else error)


class Unauthenticated(SessionError):
    """No access token present; caller must trigger login."""


class MalformedReturnLocation(SessionError):
    """Stored return location could not be deserialized."""
