"""Client for the spreadsheet-backed script endpoint.

Every call is a single POST with a JSON body carrying an ``action`` field.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

import httpx

from evpm.config import get_settings
from evpm.session import SessionUser

logger = logging.getLogger(__name__)

SESSION_EXPIRED_PATTERN = re.compile(r"unauthori[sz]ed|expired", re.IGNORECASE)


class BackendError(RuntimeError):
    """Base class for failures talking to the script endpoint."""


class BackendNetworkError(BackendError):
    """The request failed in transport or returned a non-success status."""


class BackendApplicationError(BackendError):
    """The endpoint answered with an ``error`` field."""


class SessionExpiredError(BackendApplicationError):
    """The endpoint rejected the session token; the user must log in again."""


def classify_error(message: str) -> BackendApplicationError:
    if SESSION_EXPIRED_PATTERN.search(message or ""):
        return SessionExpiredError(message)
    return BackendApplicationError(message)


class ScriptBackend:
    def __init__(self, url: str, *, timeout: Optional[float] = None, client: Optional[httpx.Client] = None):
        self.url = (url or "").strip()
        self.timeout = timeout if timeout is not None else get_settings().http_timeout
        self._client = client
        self._owns_client = client is None

    def __enter__(self) -> "ScriptBackend":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            # Apps Script web apps answer POSTs with a redirect to the result.
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def post(self, action: str, **payload: Any) -> Dict[str, Any]:
        if not self.url:
            raise BackendNetworkError("Backend URL is not configured")
        body = {"action": action, **payload}
        try:
            response = self.client.post(self.url, json=body)
        except httpx.HTTPError as exc:
            raise BackendNetworkError(f"Failed to reach backend ({action}): {exc}") from exc

        if response.status_code >= 400:
            raise BackendNetworkError(f"Backend returned HTTP {response.status_code} for {action}")

        try:
            data = response.json()
        except ValueError as exc:
            raise BackendNetworkError(f"Backend returned invalid JSON for {action}") from exc

        if not isinstance(data, dict):
            raise BackendApplicationError(f"Unexpected {action} response shape: {type(data).__name__}")
        if data.get("error"):
            raise classify_error(str(data["error"]))
        return data

    # ------------------------------------------------------------- actions
    def get_metadata(self) -> Dict[str, Any]:
        return self.post("getMetadata")

    def get_data(self, user: SessionUser) -> Dict[str, Any]:
        data = self.post("getData", user=user.to_payload())
        return {"plans": data.get("plans"), "achievements": data.get("achievements")}

    def login(self, username: str, password: str, role_type: str, identity_name: str) -> SessionUser:
        data = self.post(
            "login",
            username=username,
            password=password,
            roleType=role_type,
            identityName=identity_name,
        )
        if not data.get("success") or not data.get("user"):
            raise BackendApplicationError(str(data.get("error") or "Login failed"))
        return SessionUser.from_payload(data["user"])

    def upload_plan(self, user: SessionUser, rows: List[Mapping[str, Any]]) -> Dict[str, Any]:
        return self.post("uploadPlan", user=user.to_payload(), rows=list(rows))

    def upload_achieved(self, user: SessionUser, rows: List[Mapping[str, Any]], day: str) -> Dict[str, Any]:
        return self.post("uploadAchieved", user=user.to_payload(), rows=list(rows), date=day)

    def update_users(self, user: SessionUser, users: List[Mapping[str, Any]]) -> Dict[str, Any]:
        return self.post("updateUsers", user=user.to_payload(), users=list(users))
