"""Script endpoint client tests (no network: httpx.MockTransport)."""

from __future__ import annotations

import json

import httpx
import pytest

from evpm.backend import (
    BackendApplicationError,
    BackendNetworkError,
    ScriptBackend,
    SessionExpiredError,
    classify_error,
)
from evpm.session import SessionUser

URL = "https://backend.test/exec"


def make_backend(handler) -> ScriptBackend:
    return ScriptBackend(URL, timeout=5, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_posts_action_and_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"plans": [{"SALESMANNO": 1}], "achievements": []})

    user = SessionUser(username="alpha", auth_token="tok")
    with make_backend(handler) as backend:
        data = backend.get_data(user)
    assert seen[0]["action"] == "getData"
    assert seen[0]["user"]["authToken"] == "tok"
    assert data == {"plans": [{"SALESMANNO": 1}], "achievements": []}


def test_login_returns_session_user():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["roleType"] == "ASM"
        return httpx.Response(200, json={"success": True, "user": {"username": body["username"], "authToken": "abc", "scope": {"key": "Dist Name", "value": "Alpha Dist"}}})

    with make_backend(handler) as backend:
        user = backend.login("Alpha Dist", "pw", "ASM", "Alpha Dist")
    assert user.auth_token == "abc"
    assert user.scope == {"distributor": "Alpha Dist"}


def test_login_failure_without_user():
    with make_backend(lambda request: httpx.Response(200, json={"success": False})) as backend:
        with pytest.raises(BackendApplicationError, match="Login failed"):
            backend.login("x", "y", "SM", "x")


def test_session_expired_is_classified():
    with make_backend(lambda request: httpx.Response(200, json={"error": "Unauthorized: token Expired"})) as backend:
        with pytest.raises(SessionExpiredError):
            backend.get_metadata()


def test_application_error_is_not_session_expired():
    with make_backend(lambda request: httpx.Response(200, json={"error": "Sheet not found"})) as backend:
        with pytest.raises(BackendApplicationError) as info:
            backend.get_metadata()
    assert not isinstance(info.value, SessionExpiredError)


def test_http_status_and_transport_errors():
    with make_backend(lambda request: httpx.Response(502, text="bad gateway")) as backend:
        with pytest.raises(BackendNetworkError):
            backend.get_metadata()

    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with make_backend(boom) as backend:
        with pytest.raises(BackendNetworkError):
            backend.get_metadata()


def test_invalid_json_is_network_error():
    with make_backend(lambda request: httpx.Response(200, text="<html>")) as backend:
        with pytest.raises(BackendNetworkError):
            backend.get_metadata()


def test_missing_url():
    with pytest.raises(BackendNetworkError):
        ScriptBackend("", timeout=1).post("getMetadata")


def test_classify_error():
    assert isinstance(classify_error("unauthorised"), SessionExpiredError)
    assert type(classify_error("quota exceeded")) is BackendApplicationError
