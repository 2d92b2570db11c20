from __future__ import annotations

import pytest

from evpm.backend import BackendNetworkError, SessionExpiredError
from evpm.session import Role, SessionUser
from evpm.store import AppStateStore
from evpm.sync import SyncCoordinator
from evpm.uploads import format_user_rows, upload


class FakeBackend:
    def __init__(self, data=None, error=None, user=None):
        self.data = data
        self.error = error
        self.user = user
        self.calls = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None

    def get_metadata(self):
        if self.error:
            raise self.error
        return {"asmList": ["Alpha Dist"]}

    def get_data(self, user):
        self.calls.append(("getData", user.username))
        if self.error:
            raise self.error
        return self.data

    def login(self, username, password, role_type, identity_name):
        self.calls.append(("login", username, role_type, identity_name))
        if self.error:
            raise self.error
        return self.user

    def upload_plan(self, user, rows):
        self.calls.append(("uploadPlan", len(rows)))
        return {"success": True}

    def upload_achieved(self, user, rows, day):
        self.calls.append(("uploadAchieved", len(rows), day))
        return {"success": True}

    def update_users(self, user, users):
        self.calls.append(("updateUsers", users))
        return {"success": True}


@pytest.fixture
def store(tmp_path):
    store = AppStateStore(tmp_path)
    store.set_sync_url("https://backend.test/exec")
    return store


def signed_in(store):
    store.set_user(SessionUser(username="alpha", auth_token="tok", scope={"distributor": "Alpha Dist"}))
    return store


def test_sync_stores_snapshot(store, snapshot):
    backend = FakeBackend(data=snapshot)
    result = SyncCoordinator(signed_in(store), lambda url: backend).sync_data()
    assert result.ok and not result.skipped
    assert len(store.data["plans"]) == len(snapshot["plans"])
    assert store.last_updated


def test_sync_keeps_cached_data_on_failure(store, snapshot):
    signed_in(store).set_data(snapshot)
    backend = FakeBackend(error=BackendNetworkError("down"))
    result = SyncCoordinator(store, lambda url: backend).sync_data()
    assert not result.ok
    assert "down" in result.error
    assert len(store.data["plans"]) == len(snapshot["plans"])


def test_missing_section_keeps_previous(store, snapshot):
    signed_in(store).set_data(snapshot)
    backend = FakeBackend(data={"plans": None, "achievements": []})
    SyncCoordinator(store, lambda url: backend).sync_data()
    assert len(store.data["plans"]) == len(snapshot["plans"])
    assert store.data["achievements"] == []


def test_session_expiry_logs_out_and_reraises(store, snapshot):
    signed_in(store).set_data(snapshot)
    backend = FakeBackend(error=SessionExpiredError("Unauthorized"))
    coordinator = SyncCoordinator(store, lambda url: backend)
    with pytest.raises(SessionExpiredError):
        coordinator.sync_data()
    assert store.user is None
    assert store.data["plans"] == []
    assert not coordinator.is_syncing


def test_reentrant_sync_is_dropped(store, snapshot):
    backend = FakeBackend(data=snapshot)
    coordinator = SyncCoordinator(signed_in(store), lambda url: backend)
    coordinator._lock.acquire()
    try:
        result = coordinator.sync_data()
    finally:
        coordinator._lock.release()
    assert result.skipped
    assert backend.calls == []


def test_sync_requires_session(store):
    result = SyncCoordinator(store, lambda url: FakeBackend()).sync_data()
    assert not result.ok


def test_login_resolves_representative_scope(store, snapshot):
    store.set_data(snapshot)
    backend = FakeBackend(user=SessionUser(username="101", name="101 - Ahmed Ali Hassan", auth_token="tok"))
    user = SyncCoordinator(store, lambda url: backend).login(Role.REPRESENTATIVE, "101 - Ahmed Ali Hassan", "pw")
    assert backend.calls[0] == ("login", "101", "SALESMANNAMEA", "101 - Ahmed Ali Hassan")
    assert user.scope == {"rep_id": "101", "team_leader": "Tarek Saad Omar", "distributor": "Alpha Dist"}
    assert user.job_title == "Sales Representative"
    assert store.user == user


def test_login_errors_propagate(store):
    coordinator = SyncCoordinator(store, lambda url: FakeBackend(error=BackendNetworkError("down")))
    with pytest.raises(BackendNetworkError):
        coordinator.login(Role.SALES_MANAGER, "Sami", "pw")
    with pytest.raises(ValueError):
        coordinator.login(Role.SALES_MANAGER, "", "pw")
    assert store.user is None


def test_metadata_failure_is_ignored(store):
    assert SyncCoordinator(store, lambda url: FakeBackend(error=BackendNetworkError("down"))).sync_metadata() is False
    assert store.metadata is None
    assert SyncCoordinator(store, lambda url: FakeBackend()).sync_metadata() is True
    assert store.metadata == {"asmList": ["Alpha Dist"]}


def test_uploads():
    backend = FakeBackend()
    user = SessionUser(username="admin", role="admin", auth_token="tok")
    upload(backend, user, "achieved", [{"SALESMANNO": 1}], day="2024-06-09")
    upload(backend, user, "users", [{"Username": "u1", "Password": 123, "Name": "User One", "Role": "admin"}, {"Name": "no username"}])
    assert backend.calls[0] == ("uploadAchieved", 1, "2024-06-09")
    assert backend.calls[1][1] == [{"username": "u1", "password": "123", "name": "User One", "jobTitle": "Staff", "role": "admin"}]
    with pytest.raises(ValueError):
        upload(backend, user, "achieved", [], day="")
    with pytest.raises(ValueError):
        upload(backend, user, "bogus", [])


def test_format_user_rows_defaults():
    assert format_user_rows([{"Username": "u2"}]) == [{"username": "u2", "password": "", "name": "u2", "jobTitle": "Staff", "role": "user"}]


def test_read_sheet_csv_and_xlsx(tmp_path):
    import pandas as pd

    from evpm.uploads import read_sheet

    frame = pd.DataFrame({"SALESMANNO": [101, 102], "Ach GSV": [400.0, None], "Days": pd.to_datetime(["2024-06-09", "2024-06-09"])})
    csv_path = tmp_path / "ach.csv"
    frame.to_csv(csv_path, index=False)
    rows = read_sheet(csv_path)
    assert rows[0]["SALESMANNO"] == 101
    assert rows[1]["Ach GSV"] is None

    xlsx_path = tmp_path / "ach.xlsx"
    frame.to_excel(xlsx_path, index=False)
    rows = read_sheet(xlsx_path)
    assert rows[0]["Days"] == "2024-06-09"
    assert len(rows) == 2
