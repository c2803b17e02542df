"""
Client session configuration. Lab defaults match the local authorization server.
No secrets in this file; everything comes from env.
"""
import os

# Identity provider base URL (issuer); /authorize, /userinfo and /logout live under it
AUTH_DOMAIN = os.environ.get("AUTH_DOMAIN", "http://127.0.0.1:9000").rstrip("/")

# Our client_id (must be registered at the provider)
CLIENT_ID = os.environ.get("AUTH_CLIENT_ID", "test-client")

# API audience the access token is requested for
AUDIENCE = os.environ.get("AUTH_AUDIENCE", "http://127.0.0.1:7000")

# Where the provider redirects after login; tokens arrive in the URL fragment
REDIRECT_URI = os.environ.get("AUTH_REDIRECT_URI", "http://127.0.0.1:8000/callback")

# Where the provider redirects after logout; must be registered at the provider
POST_LOGOUT_RETURN_URL = os.environ.get("AUTH_POST_LOGOUT_RETURN_URL", "http://127.0.0.1:8000")

# Scopes requested at login; also the fallback when the provider omits scope
REQUESTED_SCOPES = os.environ.get("AUTH_SCOPE", "openid profile email read:courses")

# Scope required by the courses page
SCOPE_READ_COURSES = "read:courses"

# Storage key for the pre-login return location
RETURN_LOCATION_KEY = "redirect_on_login"

# Persistent key-value store (return location, pending flows). Survives restarts when file-based.
DATABASE_URL = os.environ.get("CLIENT_SESSION_DATABASE_URL", "sqlite:///./client_session.db")

# Transport timeout for provider HTTP calls (seconds)
HTTP_TIMEOUT = float(os.environ.get("AUTH_HTTP_TIMEOUT", "10.0"))

# Fire silent renewal this many seconds before expiry (0 = exactly at expiry)
RENEWAL_LEEWAY = int(os.environ.get("AUTH_RENEWAL_LEEWAY", "0"))
