"""Tests for internly/auth.py — session events, the REST client and sign-up checks."""

import pytest
import requests

from internly import auth
from internly.auth import (
    GENERIC_AUTH_MESSAGE,
    AuthIdentity,
    AuthSession,
    FirebaseAuthClient,
    describe_auth_error,
    validate_signup,
)
from internly.errors import AuthenticationError, TransientRemoteError


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


@pytest.fixture
def calls(monkeypatch):
    """Queue responses for requests.post and record what was sent."""
    recorded = {"sent": [], "responses": []}

    def fake_post(url, json=None, timeout=None):
        recorded["sent"].append({"url": url, "json": json})
        response = recorded["responses"].pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(auth.requests, "post", fake_post)
    return recorded


def test_session_notifies_listeners():
    session = AuthSession()
    seen = []
    unsubscribe = session.on_change(seen.append)

    ana = AuthIdentity(uid="u1", email="ana@example.com")
    session.sign_in(ana)
    session.sign_out()
    session.sign_out()
    assert seen == [ana, None]
    assert session.current_uid is None

    unsubscribe()
    session.sign_in(ana)
    assert seen == [ana, None]


def test_describe_auth_error():
    assert describe_auth_error("wrong-password") == "Incorrect password. Please try again."
    assert describe_auth_error("something-new") == GENERIC_AUTH_MESSAGE


def test_client_requires_key():
    with pytest.raises(ValueError):
        FirebaseAuthClient("")


def test_sign_in_success(calls):
    calls["responses"].append(FakeResponse(200, {
        "localId": "uid-9", "email": "ana@example.com", "idToken": "tok", "displayName": "Ana",
    }))
    client = FirebaseAuthClient("key-123")
    identity = client.sign_in_with_password("ana@example.com", "hunter22")

    assert identity == AuthIdentity(uid="uid-9", email="ana@example.com", display_name="Ana")
    assert client.id_token == "tok"
    assert "accounts:signInWithPassword?key=key-123" in calls["sent"][0]["url"]
    client.sign_out()
    assert client.id_token is None


def test_provider_errors_are_mapped(calls):
    calls["responses"].append(FakeResponse(400, {"error": {"message": "WEAK_PASSWORD : Password should be at least 6 characters"}}))
    with pytest.raises(AuthenticationError) as exc:
        FirebaseAuthClient("key").create_account("ana@example.com", "123")
    assert exc.value.code == "weak-password"
    assert "at least 6" in exc.value.message


def test_unknown_provider_error_gets_generic_message(calls):
    calls["responses"].append(FakeResponse(400, {"error": {"message": "OPERATION_NOT_ALLOWED"}}))
    with pytest.raises(AuthenticationError) as exc:
        FirebaseAuthClient("key").sign_in_with_password("a@b.co", "x")
    assert exc.value.message == GENERIC_AUTH_MESSAGE


def test_network_failure_is_transient(calls):
    calls["responses"].append(requests.ConnectionError("offline"))
    with pytest.raises(TransientRemoteError):
        FirebaseAuthClient("key").sign_in_with_password("a@b.co", "x")


def test_server_error_is_transient(calls):
    calls["responses"].append(FakeResponse(503, {}))
    with pytest.raises(TransientRemoteError):
        FirebaseAuthClient("key").send_password_reset("a@b.co")


def test_validate_signup():
    assert validate_signup("Ana", "ana@example.com", "hunter22", "hunter22", 486, "2025-01-06") == []
    errors = validate_signup("Ana", "ana@example.com", "abc", "abc", 486, "2025-01-06")
    assert errors == ["Password must be at least 6 characters."]
    assert validate_signup("Ana", "ana@example.com", None, None, 486, "2025-01-06") == []
    assert "Passwords do not match." in validate_signup("Ana", "ana@example.com", "hunter22", "hunter23", 1, "2025-01-06")
