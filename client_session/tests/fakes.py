"""Test doubles for the provider, scheduler and clock."""
from client_session.errors import ProviderError
from client_session.tokens import TokenBundle


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        """Run the callback even if cancelled (a timer that could not be stopped in time)."""
        self.fired = True
        self.fn()


class FakeScheduler:
    def __init__(self):
        self.timers: list[FakeTimer] = []

    def call_later(self, delay, fn):
        timer = FakeTimer(delay, fn)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]


class FakeProvider:
    def __init__(self):
        self.authorize_calls = 0
        self.callback_result: TokenBundle | ProviderError = ProviderError("invalid_hash", "no hash")
        self.session_results: list[TokenBundle | ProviderError] = []
        self.check_session_calls = 0
        self.user_info: dict | ProviderError = {"sub": "42", "name": "Test User"}
        self.user_info_calls: list[str] = []
        self.logout_urls: list[str] = []
        self.parsed_targets: list[str] = []
        self.during_check_session = None

    def authorize(self):
        self.authorize_calls += 1

    def parse_callback(self, navigation_target):
        self.parsed_targets.append(navigation_target)
        if isinstance(self.callback_result, ProviderError):
            raise self.callback_result
        return self.callback_result

    def check_session(self):
        self.check_session_calls += 1
        if self.during_check_session is not None:
            self.during_check_session()
        result = self.session_results.pop(0) if self.session_results else ProviderError("login_required")
        if isinstance(result, ProviderError):
            raise result
        return result

    def fetch_user_info(self, access_token):
        self.user_info_calls.append(access_token)
        if isinstance(self.user_info, ProviderError):
            raise self.user_info
        return self.user_info

    def logout(self, return_url):
        self.logout_urls.append(return_url)


class RecordingReporter:
    def __init__(self):
        self.user_messages: list[str] = []
        self.diagnostics: list[tuple[str, Exception | None]] = []

    def notify_user(self, message):
        self.user_messages.append(message)

    def log_diagnostic(self, message, error=None):
        self.diagnostics.append((message, error))
