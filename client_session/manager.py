"""
SessionManager: login redirect, callback handling, session state, silent renewal,
scope checks and a cached user profile.

State is replaced as one SessionState value under a lock, together with re-arming the
renewal timer. Each armed timer carries a generation; a timer whose generation is no longer
current does nothing when it fires.
"""
import logging
import threading
import time
from functools import partial
from typing import Callable, Iterable

from client_session.errors import MalformedReturnLocation, ProviderError, Unauthenticated
from client_session.navigation import ROOT_LOCATION, Navigator, deserialize_location, serialize_location
from client_session.provider import IdentityProviderClient
from client_session.reporting import ErrorReporter
from client_session.scheduler import Scheduler, ThreadingScheduler, TimerHandle
from client_session.stores import KeyValueStore
from client_session.tokens import SessionState, TokenBundle, parse_scope

logger = logging.getLogger(__name__)

DEFAULT_RETURN_LOCATION_KEY = "redirect_on_login"

RenewalCallback = Callable[[ProviderError | None, TokenBundle | None], None]


class SessionManager:
    def __init__(
        self,
        *,
        provider: IdentityProviderClient,
        store: KeyValueStore,
        navigator: Navigator,
        reporter: ErrorReporter,
        requested_scopes: str = "",
        post_logout_return_url: str = "/",
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        return_location_key: str = DEFAULT_RETURN_LOCATION_KEY,
        renewal_leeway: float = 0,
    ):
        self.provider = provider
        self.store = store
        self.navigator = navigator
        self.reporter = reporter
        self.requested_scopes = requested_scopes
        self.post_logout_return_url = post_logout_return_url
        self.scheduler = scheduler or ThreadingScheduler()
        self.clock = clock
        self.return_location_key = return_location_key
        self.renewal_leeway = renewal_leeway

        self._state = SessionState()
        self._lock = threading.RLock()
        self._renewal_generation = 0
        self._renewal_handle: TimerHandle | None = None

    # --- Read-only views ---

    @property
    def expires_at(self) -> float | None:
        return self._state.expires_at

    @property
    def granted_scopes(self) -> frozenset[str]:
        return self._state.granted_scopes

    @property
    def profile(self) -> dict | None:
        return self._state.profile

    # --- Login / callback ---

    def login(self) -> None:
        """Remember where the user is, then redirect to the provider's login page."""
        self.store.set(self.return_location_key, serialize_location(self.navigator.current_location()))
        self.provider.authorize()

    def handle_authentication(self, navigation_target: str) -> bool:
        """
        Complete login from the provider callback. On success the session is set and the user
        is sent back to where login() was called; on failure to the root with a notification.
        The stored return location is cleared either way. Returns True on success.
        """
        try:
            bundle = self.provider.parse_callback(navigation_target)
        except ProviderError as e:
            self.navigator.push(ROOT_LOCATION)
            self.reporter.notify_user(f"Error: {e.error}. Check the logs for further details.")
            self.reporter.log_diagnostic("Authentication callback failed", e)
            return False
        else:
            self.set_session(bundle)
            self.navigator.push(self._stored_return_location())
            logger.info("Login completed; scopes=%s", " ".join(sorted(self._state.granted_scopes)))
            return True
        finally:
            self.store.remove(self.return_location_key)

    def _stored_return_location(self):
        try:
            location = deserialize_location(self.store.get(self.return_location_key))
        except MalformedReturnLocation as e:
            logger.warning("Ignoring stored return location: %s", e)
            return ROOT_LOCATION
        return ROOT_LOCATION if location is None else location

    # --- Session state ---

    def set_session(self, bundle: TokenBundle) -> None:
        """Store tokens, scopes and expiry from bundle and re-arm the renewal timer."""
        if bundle.scope:
            granted = parse_scope(bundle.scope)
        else:
            # Provider omits scope when it granted exactly what was requested
            granted = parse_scope(self.requested_scopes or "")
        with self._lock:
            expires_at = self.clock() + bundle.expires_in
            self._state = self._state.with_tokens(bundle, expires_at, granted)
            self.schedule_renewal()

    def clear_session(self) -> None:
        """Forget tokens, scopes, expiry and profile; any pending renewal becomes a no-op."""
        with self._lock:
            self._state = SessionState()
            self._cancel_renewal()

    def is_authenticated(self) -> bool:
        return self._state.is_authenticated(self.clock())

    def has_scopes(self, scopes: Iterable[str]) -> bool:
        if isinstance(scopes, str):
            scopes = [scopes]
        granted = self._state.granted_scopes
        return all(scope in granted for scope in scopes)

    def get_access_token(self) -> str:
        access_token = self._state.access_token
        if not access_token:
            raise Unauthenticated("No access token found.")
        return access_token

    # --- Renewal ---

    def schedule_renewal(self) -> None:
        """
        Arm a one-shot silent renewal at expiry (less renewal_leeway), replacing any armed timer.
        An already expired session gets no timer; the user has to log in again.
        """
        with self._lock:
            self._cancel_renewal()
            expires_at = self._state.expires_at
            if expires_at is None:
                return
            delay = expires_at - self.clock()
            if delay <= 0:
                logger.debug("Session already expired; renewal not scheduled")
                return
            delay = max(0, delay - self.renewal_leeway)
            self._renewal_handle = self.scheduler.call_later(
                delay, partial(self._on_renewal_timer, self._renewal_generation)
            )
            logger.debug("Renewal scheduled in %.1fs (generation %s)", delay, self._renewal_generation)

    def _cancel_renewal(self) -> None:
        self._renewal_generation += 1
        handle, self._renewal_handle = self._renewal_handle, None
        if handle is not None:
            handle.cancel()

    def _on_renewal_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._renewal_generation:
                logger.debug("Stale renewal timer (generation %s) ignored", generation)
                return
            self._renewal_handle = None
        self._renew(generation)

    def renew(self, callback: RenewalCallback | None = None) -> TokenBundle | None:
        """
        Silently re-check the provider session. Success replaces the session (and re-arms the
        timer); failure is logged and the session lapses at its expiry.
        If the session was replaced or cleared while the check was in flight, the result is
        discarded and None is returned.
        callback(error, result) runs after the session has been updated.
        """
        with self._lock:
            generation = self._renewal_generation
        return self._renew(generation, callback)

    def _renew(self, generation: int, callback: RenewalCallback | None = None) -> TokenBundle | None:
        error: ProviderError | None = None
        result: TokenBundle | None = None
        try:
            result = self.provider.check_session()
        except ProviderError as e:
            error = e
            self.reporter.log_diagnostic("Silent token renewal failed", e)
        else:
            with self._lock:
                if generation != self._renewal_generation:
                    logger.info("Session changed during silent renewal; result discarded")
                    result = None
                else:
                    self.set_session(result)
                    logger.info("Session renewed; expires_at=%s", self._state.expires_at)
        if callback is not None:
            callback(error, result)
        return result

    # --- Profile ---

    def get_profile(self, refresh: bool = False) -> dict | None:
        """
        Cached user profile; fetched from the provider on first use (or when refresh=True).
        Raises Unauthenticated without an access token. Returns None if the provider fails.
        The cache survives token renewal.
        """
        if not refresh and self._state.profile is not None:
            return self._state.profile
        access_token = self.get_access_token()
        try:
            profile = self.provider.fetch_user_info(access_token)
        except ProviderError as e:
            self.reporter.log_diagnostic("Fetching user profile failed", e)
            return None
        with self._lock:
            self._state = self._state.with_profile(profile)
        return profile

    # --- Logout ---

    def logout(self) -> None:
        self.clear_session()
        logger.info("Logged out locally; redirecting to provider logout")
        self.provider.logout(self.post_logout_return_url)
