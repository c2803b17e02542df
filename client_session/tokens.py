"""
Token bundle and in-memory session state.
SessionState is replaced as a whole on every change so tokens and expiry never tear.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from client_session.errors import ProviderError


def parse_scope(scope_value: str | list | None) -> set[str]:
    """Normalize a scope value (space-separated string or list) to a set of scope strings."""
    if scope_value is None:
        return set()
    if isinstance(scope_value, list):
        return set(str(s) for s in scope_value)
    return set(scope_value.split())


@dataclass(frozen=True)
class TokenBundle:
    id_token: str
    access_token: str
    expires_in: int
    scope: str | None = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "TokenBundle":
        """
        Build from provider response parameters (callback fragment or JSON body).
        Raises ProviderError when either token is missing or expires_in is not numeric.
        """
        access_token = data.get("access_token")
        id_token = data.get("id_token")
        if not access_token or not id_token:
            raise ProviderError("invalid_token_response", "Response must contain access_token and id_token")
        if data.get("expires_in") in (None, ""):
            raise ProviderError("invalid_token_response", "Response must contain expires_in")
        try:
            expires_in = int(float(data["expires_in"]))
        except (TypeError, ValueError, OverflowError):
            raise ProviderError("invalid_token_response", "expires_in must be a number of seconds")
        return cls(
            id_token=id_token,
            access_token=access_token,
            expires_in=expires_in,
            scope=data.get("scope") or None,
        )


@dataclass(frozen=True)
class SessionState:
    id_token: str | None = None
    access_token: str | None = None
    granted_scopes: frozenset[str] = field(default_factory=frozenset)
    expires_at: float | None = None
    profile: dict | None = None

    def is_authenticated(self, now: float) -> bool:
        return self.expires_at is not None and now < self.expires_at

    def with_tokens(self, bundle: TokenBundle, expires_at: float, granted_scopes: set[str]) -> "SessionState":
        """New state with tokens, scopes and expiry from bundle; cached profile is carried over."""
        return replace(
            self,
            id_token=bundle.id_token,
            access_token=bundle.access_token,
            granted_scopes=frozenset(granted_scopes),
            expires_at=expires_at,
        )

    def with_profile(self, profile: dict | None) -> "SessionState":
        return replace(self, profile=profile)
