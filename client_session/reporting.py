"""
Error reporting: user-facing notifications and operator diagnostics.
Never include token values in either.
"""
import logging
from collections import deque
from typing import Protocol

logger = logging.getLogger(__name__)

# Keep only the most recent notifications for the UI
MAX_MESSAGES = 20


class ErrorReporter(Protocol):
    def notify_user(self, message: str) -> None: ...

    def log_diagnostic(self, message: str, error: Exception | None = None) -> None: ...


class LoggingErrorReporter:
    def __init__(self, max_messages: int = MAX_MESSAGES):
        self._messages: deque[str] = deque(maxlen=max_messages)

    def notify_user(self, message: str) -> None:
        logger.warning("User notification: %s", message)
        self._messages.append(message)

    def log_diagnostic(self, message: str, error: Exception | None = None) -> None:
        if error is None:
            logger.error("%s", message)
            return
        code = getattr(error, "error", type(error).__name__)
        description = getattr(error, "error_description", None) or str(error)
        logger.error("%s: error=%s description=%s", message, code, description)

    def pop_messages(self) -> list[str]:
        messages = list(self._messages)
        self._messages.clear()
        return messages
