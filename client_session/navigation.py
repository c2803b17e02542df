"""
Navigation targets and the return location stored across the login redirect.
A location is any JSON-serializable value: a path string or a mapping like {"pathname": ..., "search": ...}.
"""
import json
from collections import deque
from typing import Any, Protocol

from client_session.errors import MalformedReturnLocation

ROOT_LOCATION = "/"

# History entries kept by HistoryNavigator
MAX_HISTORY = 50

# What a browser writes when JSON.stringify() got undefined; treat as "nothing stored"
_UNDEFINED = "undefined"


class Navigator(Protocol):
    def current_location(self) -> Any: ...

    def push(self, location: Any) -> None: ...


class HistoryNavigator:
    """
    In-memory history (bounded). current_location() is the last pushed in-app entry.
    Absolute URLs (provider redirects) leave the app, so they are handed to take_redirect()
    without becoming the current location.
    """

    def __init__(self, initial: Any = ROOT_LOCATION, max_entries: int = MAX_HISTORY):
        self.entries: deque[Any] = deque([initial], maxlen=max_entries)
        self._pending: Any = None

    def current_location(self) -> Any:
        return self.entries[-1]

    def push(self, location: Any) -> None:
        if not _is_external(location):
            self.entries.append(location)
        self._pending = location

    def take_redirect(self) -> Any:
        """Most recent pushed target (or None) and forget it."""
        location, self._pending = self._pending, None
        return location


def _is_external(location: Any) -> bool:
    return isinstance(location, str) and location.startswith(("http://", "https://"))


def serialize_location(location: Any) -> str:
    return json.dumps(location)


def deserialize_location(raw: str | None) -> Any:
    """
    Stored value -> location. None (or "undefined") means nothing was stored.
    Raises MalformedReturnLocation on invalid JSON.
    """
    if raw is None or raw == _UNDEFINED:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedReturnLocation(f"Stored return location is not valid JSON: {e}") from e


def location_to_url(location: Any) -> str:
    """Flatten a location (path string or pathname/search/hash mapping) to a relative URL."""
    if isinstance(location, dict):
        return f"{location.get('pathname') or ROOT_LOCATION}{location.get('search') or ''}{location.get('hash') or ''}"
    if isinstance(location, str) and location.startswith("/"):
        return location
    return ROOT_LOCATION
