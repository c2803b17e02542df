"""
Identity provider client for the implicit flow (response_type "token id_token").
Builds the /authorize redirect, parses the callback fragment, re-checks the provider
session silently (prompt=none), fetches /userinfo and builds the logout redirect.
Token signatures are not verified here; the id_token is only read for its nonce claim.
"""
import json
import logging
import secrets
import time
from typing import Any, Callable, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx
import jwt

from client_session.errors import ProviderError
from client_session.stores import KeyValueStore
from client_session.tokens import TokenBundle

logger = logging.getLogger(__name__)

RESPONSE_TYPE = "token id_token"

# Pending flow TTL (seconds); allow 10 min for the user to log in
FLOW_TTL = 600
FLOW_KEY_PREFIX = "auth_flow:"

# Parameters that mark a URL as carrying an authorization response
_RESPONSE_PARAMS = ("access_token", "id_token", "error", "state")


class IdentityProviderClient(Protocol):
    def authorize(self) -> None: ...

    def parse_callback(self, navigation_target: str) -> TokenBundle: ...

    def check_session(self) -> TokenBundle: ...

    def fetch_user_info(self, access_token: str) -> dict: ...

    def logout(self, return_url: str) -> None: ...


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in callback."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Random value for ID token binding; required when openid scope is requested."""
    return secrets.token_urlsafe(32)


def parse_response_params(url: str) -> dict[str, str]:
    """
    Authorization response parameters from a callback URL.
    Implicit flow puts them in the fragment; fall back to the query (fragment relayed as query).
    """
    parts = urlsplit(url)
    for raw in (parts.fragment, parts.query):
        if not raw:
            continue
        params = {k: v[0] for k, v in parse_qs(raw, keep_blank_values=False).items()}
        if any(p in params for p in _RESPONSE_PARAMS):
            return params
    return {}


def _json_body(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError as e:
        raise ProviderError("userinfo_failed", f"UserInfo response is not valid JSON ({r.status_code})") from e


def _load_flow(raw: str) -> dict[str, Any] | None:
    try:
        flow = json.loads(raw)
    except ValueError:
        return None
    return flow if isinstance(flow, dict) else None


def _flow_expired(flow: dict[str, Any], now: float) -> bool:
    try:
        created_at = float(flow.get("created_at", 0))
    except (TypeError, ValueError):
        return True
    return (now - created_at) > FLOW_TTL


class HttpIdentityProvider:
    def __init__(
        self,
        *,
        domain: str,
        client_id: str,
        audience: str,
        redirect_uri: str,
        scope: str,
        store: KeyValueStore,
        redirect: Callable[[str], None],
        http_client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self.domain = domain.rstrip("/")
        self.client_id = client_id
        self.audience = audience
        self.redirect_uri = redirect_uri
        self.scope = scope
        self._store = store
        self._redirect = redirect
        # Persistent client: its cookie jar carries the provider session for check_session()
        self._http = http_client or httpx.Client(timeout=timeout)

    # --- Redirect out ---

    def build_authorize_url(self, *, state: str, nonce: str, prompt: str | None = None) -> str:
        """Build /authorize URL with required and optional params."""
        params = {
            "response_type": RESPONSE_TYPE,
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "audience": self.audience,
            "scope": self.scope,
            "state": state,
            "nonce": nonce,
        }
        if prompt:
            params["prompt"] = prompt
        return f"{self.domain}/authorize?{urlencode(params)}"

    def authorize(self) -> None:
        state, nonce = self._start_flow()
        self._redirect(self.build_authorize_url(state=state, nonce=nonce))

    def build_logout_url(self, return_url: str) -> str:
        params = {"client_id": self.client_id, "post_logout_redirect_uri": return_url}
        return f"{self.domain}/logout?{urlencode(params)}"

    def logout(self, return_url: str) -> None:
        self._redirect(self.build_logout_url(return_url))

    # --- Redirect in ---

    def parse_callback(self, navigation_target: str) -> TokenBundle:
        """
        Callback URL -> TokenBundle. Raises ProviderError on provider error, missing response,
        unknown/expired state or nonce mismatch.
        """
        params = parse_response_params(navigation_target or "")
        if not params:
            raise ProviderError("invalid_hash", "No authorization response found in callback URL")
        return self._complete_flow(params)

    def check_session(self) -> TokenBundle:
        """Silent re-authentication against the provider session (prompt=none, no user interaction)."""
        state, nonce = self._start_flow()
        url = self.build_authorize_url(state=state, nonce=nonce, prompt="none")
        try:
            r = self._http.get(url, follow_redirects=False)
        except httpx.HTTPError as e:
            self._store.remove(FLOW_KEY_PREFIX + state)
            raise ProviderError("network_error", str(e)) from e
        location = r.headers.get("location")
        if not r.is_redirect or not location:
            self._store.remove(FLOW_KEY_PREFIX + state)
            raise ProviderError("login_required", f"Provider answered {r.status_code} instead of a redirect")
        params = parse_response_params(location)
        if not params:
            self._store.remove(FLOW_KEY_PREFIX + state)
            raise ProviderError("invalid_hash", "No authorization response in provider redirect")
        return self._complete_flow(params)

    def fetch_user_info(self, access_token: str) -> dict:
        try:
            r = self._http.get(
                f"{self.domain}/userinfo",
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ProviderError("network_error", str(e)) from e
        if r.status_code != 200:
            err = {}
            if r.headers.get("content-type", "").startswith("application/json"):
                try:
                    err = r.json()
                except ValueError:
                    logger.debug("UserInfo error body is not valid JSON")
            if not isinstance(err, dict):
                err = {}
            raise ProviderError(
                err.get("error", "userinfo_failed"),
                err.get("error_description") or err.get("detail") or f"UserInfo returned {r.status_code}",
            )
        profile = _json_body(r)
        if not isinstance(profile, dict):
            raise ProviderError("userinfo_failed", "UserInfo response is not a JSON object")
        return profile

    # --- Pending flows (state -> nonce) ---

    def _start_flow(self) -> tuple[str, str]:
        self._clean_expired()
        state = generate_state()
        nonce = generate_nonce()
        self._store.set(FLOW_KEY_PREFIX + state, json.dumps({"nonce": nonce, "created_at": time.time()}))
        return state, nonce

    def _pop_flow(self, state: str) -> dict[str, Any] | None:
        key = FLOW_KEY_PREFIX + state
        raw = self._store.get(key)
        if raw is None:
            return None
        self._store.remove(key)
        flow = _load_flow(raw)
        if flow is None:
            logger.warning("Discarding unreadable pending flow for state")
            return None
        if _flow_expired(flow, time.time()):
            return None
        return flow

    def _clean_expired(self) -> None:
        """Drop abandoned flows (logins never completed, silent checks that never came back)."""
        now = time.time()
        for key in self._store.keys(FLOW_KEY_PREFIX):
            raw = self._store.get(key)
            if raw is None:
                continue
            flow = _load_flow(raw)
            if flow is None or _flow_expired(flow, now):
                self._store.remove(key)

    def _complete_flow(self, params: dict[str, str]) -> TokenBundle:
        state = params.get("state")
        flow = self._pop_flow(state) if state else None
        if "error" in params:
            raise ProviderError(params["error"], params.get("error_description"))
        if flow is None:
            raise ProviderError("invalid_state", "Invalid or expired state. Please try logging in again.")
        bundle = TokenBundle.from_response(params)
        if self._nonce_claim(bundle.id_token) != flow.get("nonce"):
            raise ProviderError("invalid_token", "Nonce does not match the authorization request")
        return bundle

    @staticmethod
    def _nonce_claim(id_token: str) -> str | None:
        try:
            claims = jwt.decode(id_token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.debug("Unreadable id_token: %s", e)
            raise ProviderError("invalid_token", "id_token is not a readable JWT") from e
        return claims.get("nonce")
