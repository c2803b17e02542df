"""Tests for client_session web routes: login redirect, callback, scope-gated pages, renew, logout."""
from unittest.mock import patch
from urllib.parse import parse_qs, urlencode, urlsplit

import jwt
import pytest
from fastapi.testclient import TestClient

from client_session import main
from client_session.config import RETURN_LOCATION_KEY
from client_session.errors import ProviderError
from client_session.tokens import TokenBundle

client = TestClient(main.app)


@pytest.fixture(autouse=True)
def fresh_session():
    main.manager.clear_session()
    main.reporter.pop_messages()
    yield
    main.manager.clear_session()
    main.store.remove(RETURN_LOCATION_KEY)


def _login(next_path="/"):
    r = client.get("/login", params={"next": next_path}, follow_redirects=False)
    assert r.status_code == 302
    return {k: v[0] for k, v in parse_qs(urlsplit(r.headers["location"]).query).items()}


def _complete_query(params, scope="openid profile email read:courses"):
    id_token = jwt.encode({"sub": "42", "nonce": params["nonce"]}, "test-secret-key-with-enough-length", algorithm="HS256")
    return urlencode(
        {"access_token": "at", "id_token": id_token, "expires_in": "3600", "scope": scope, "state": params["state"]}
    )


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("service") == "client_session"


def test_home_not_logged_in():
    r = client.get("/")
    assert r.status_code == 200
    assert "Log in" in r.text


def test_login_redirects_to_provider_and_stores_location():
    params = _login("/courses")
    assert params["response_type"] == "token id_token"
    assert "nonce" in params and "state" in params
    assert main.store.get(RETURN_LOCATION_KEY) == '"/courses"'


def test_callback_relay_page():
    r = client.get("/callback")
    assert r.status_code == 200
    assert "/callback/complete?" in r.text


def test_full_login_flow_returns_to_stored_location():
    params = _login("/courses")
    r = client.get(f"/callback/complete?{_complete_query(params)}", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/courses"
    assert main.manager.is_authenticated() is True
    assert main.store.get(RETURN_LOCATION_KEY) is None

    r = client.get("/courses")
    assert r.status_code == 200
    assert len(r.json()["courses"]) == 2


def test_callback_error_goes_home_with_message():
    params = _login("/courses")
    query = urlencode({"error": "access_denied", "error_description": "User denied", "state": params["state"]})
    r = client.get(f"/callback/complete?{query}", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert main.store.get(RETURN_LOCATION_KEY) is None
    assert "access_denied" in client.get("/").text


def test_callback_without_response_is_handled():
    r = client.get("/callback/complete", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"
    assert main.manager.is_authenticated() is False


def test_courses_requires_login():
    assert client.get("/courses").status_code == 401


def test_courses_requires_scope():
    main.manager.set_session(TokenBundle(id_token="it", access_token="at", expires_in=3600, scope="openid profile"))
    r = client.get("/courses")
    assert r.status_code == 403
    assert r.json()["error"] == "insufficient_scope"


def test_profile_unauthenticated():
    assert client.get("/profile").status_code == 401


def test_profile_cached():
    main.manager.set_session(TokenBundle(id_token="it", access_token="at", expires_in=3600))
    with patch.object(main.provider, "fetch_user_info", return_value={"sub": "42"}) as fetch:
        assert client.get("/profile").json() == {"sub": "42"}
        assert client.get("/profile").json() == {"sub": "42"}
    fetch.assert_called_once_with("at")


def test_profile_provider_error():
    main.manager.set_session(TokenBundle(id_token="it", access_token="at", expires_in=3600))
    with patch.object(main.provider, "fetch_user_info", side_effect=ProviderError("invalid_token")):
        assert client.get("/profile").status_code == 502


def test_renew_failure():
    with patch.object(main.provider, "check_session", side_effect=ProviderError("login_required")):
        r = client.post("/renew")
    assert r.status_code == 200
    assert r.json() == {"renewed": False, "expires_at": None}


def test_renew_success():
    bundle = TokenBundle(id_token="it", access_token="renewed", expires_in=600)
    with patch.object(main.provider, "check_session", return_value=bundle):
        r = client.post("/renew")
    assert r.json()["renewed"] is True
    assert main.manager.get_access_token() == "renewed"


def test_logout_redirects_to_provider():
    main.manager.set_session(TokenBundle(id_token="it", access_token="at", expires_in=3600))
    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 302
    assert "/logout?" in r.headers["location"]
    assert "post_logout_redirect_uri=" in r.headers["location"]
    assert main.manager.is_authenticated() is False
