"""
Client Web App for the implicit flow. Single-user lab client: one SessionManager per process.
GET /, /login, /callback, /callback/complete, /profile, /courses, /logout; POST /renew.
"""
import html

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from client_session.config import (
    AUDIENCE,
    AUTH_DOMAIN,
    CLIENT_ID,
    DATABASE_URL,
    HTTP_TIMEOUT,
    POST_LOGOUT_RETURN_URL,
    REDIRECT_URI,
    RENEWAL_LEEWAY,
    REQUESTED_SCOPES,
    RETURN_LOCATION_KEY,
    SCOPE_READ_COURSES,
)
from client_session.errors import Unauthenticated
from client_session.manager import SessionManager
from client_session.navigation import ROOT_LOCATION, HistoryNavigator, location_to_url
from client_session.provider import HttpIdentityProvider
from client_session.reporting import LoggingErrorReporter
from client_session.stores import SqlKeyValueStore

store = SqlKeyValueStore(DATABASE_URL)
navigator = HistoryNavigator()
reporter = LoggingErrorReporter()
provider = HttpIdentityProvider(
    domain=AUTH_DOMAIN,
    client_id=CLIENT_ID,
    audience=AUDIENCE,
    redirect_uri=REDIRECT_URI,
    scope=REQUESTED_SCOPES,
    store=store,
    redirect=navigator.push,
    timeout=HTTP_TIMEOUT,
)
manager = SessionManager(
    provider=provider,
    store=store,
    navigator=navigator,
    reporter=reporter,
    requested_scopes=REQUESTED_SCOPES,
    post_logout_return_url=POST_LOGOUT_RETURN_URL,
    return_location_key=RETURN_LOCATION_KEY,
    renewal_leeway=RENEWAL_LEEWAY,
)

app = FastAPI(title="Client Session", version="0.1.0")

# Implicit flow returns tokens in the fragment, which browsers never send to the server.
# This page relays the fragment to /callback/complete as a query string.
_CALLBACK_RELAY = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Signing in</title></head>
<body>
  <p>Signing in...</p>
  <script>
    window.location.replace("/callback/complete?" + window.location.hash.substring(1));
  </script>
</body>
</html>"""


def _redirect_from_navigator(default: str = ROOT_LOCATION) -> RedirectResponse:
    target = navigator.take_redirect()
    if isinstance(target, str) and target.startswith("http"):
        return RedirectResponse(url=target, status_code=302)
    return RedirectResponse(url=location_to_url(target if target is not None else default), status_code=302)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "client_session"}


@app.get("/", response_class=HTMLResponse)
def home():
    """Home page: login state, granted scopes and any pending notifications."""
    messages = "".join(f"<p class=\"error\">{html.escape(m)}</p>" for m in reporter.pop_messages())
    if manager.is_authenticated():
        scopes = html.escape(" ".join(sorted(manager.granted_scopes)))
        body = f"""<p>Logged in. Scopes: <code>{scopes}</code></p>
  <p><a href="/profile">Profile</a> | <a href="/courses">Courses</a> | <a href="/logout">Log out</a></p>"""
    else:
        body = """<p>Not logged in. <a href="/login">Log in</a></p>"""
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Client Session</title></head>
<body>
  <h1>OAuth2 + OIDC Implicit Client</h1>
  {messages}
  {body}
</body>
</html>"""
    )


@app.get("/login")
def login(next: str = ROOT_LOCATION):
    """Record where to come back to, then redirect to the provider's /authorize."""
    navigator.push(next if next.startswith("/") and not next.startswith("//") else ROOT_LOCATION)
    navigator.take_redirect()
    manager.login()
    return _redirect_from_navigator()


@app.get("/callback", response_class=HTMLResponse)
def callback():
    return HTMLResponse(_CALLBACK_RELAY)


@app.get("/callback/complete")
def callback_complete(request: Request):
    """Finish login from the relayed authorization response; redirect to the stored location."""
    manager.handle_authentication(str(request.url))
    return _redirect_from_navigator()


@app.get("/profile")
def profile():
    try:
        data = manager.get_profile()
    except Unauthenticated as e:
        return JSONResponse({"error": "unauthenticated", "error_description": str(e)}, status_code=401)
    if data is None:
        return JSONResponse(
            {"error": "provider_error", "error_description": "Could not fetch profile"},
            status_code=502,
        )
    return data


@app.get("/courses")
def courses():
    """Course list; requires a live session with the read:courses scope."""
    if not manager.is_authenticated():
        return JSONResponse({"error": "unauthenticated", "error_description": "Log in first"}, status_code=401)
    if not manager.has_scopes([SCOPE_READ_COURSES]):
        return JSONResponse(
            {"error": "insufficient_scope", "error_description": f"Scope '{SCOPE_READ_COURSES}' required"},
            status_code=403,
        )
    return {
        "courses": [
            {"id": 1, "title": "Building Apps with OAuth"},
            {"id": 2, "title": "Securing APIs with Scopes"},
        ]
    }


@app.post("/renew")
def renew():
    """Run a silent renewal now (normally triggered by the timer before expiry)."""
    result = manager.renew()
    return {"renewed": result is not None, "expires_at": manager.expires_at}


@app.get("/logout")
def logout():
    manager.logout()
    return _redirect_from_navigator()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "client_session.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
