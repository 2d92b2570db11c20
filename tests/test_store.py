from __future__ import annotations

from evpm.session import SessionUser
from evpm.store import AppStateStore, build_invite_link, consume_invite, read_session_user

import pytest


def test_state_survives_restart(tmp_path, snapshot):
    store = AppStateStore(tmp_path)
    store.set_sync_url(" https://backend.test/exec ")
    store.set_metadata({"asmList": ["Alpha Dist"]})
    store.set_user(SessionUser(username="alpha", name="Alpha Dist", auth_token="tok", scope={"distributor": "Alpha Dist"}))
    assert store.set_data(snapshot) is True
    store.mark_synced()

    again = AppStateStore(tmp_path)
    assert again.sync_url == "https://backend.test/exec"
    assert again.metadata == {"asmList": ["Alpha Dist"]}
    assert again.user.scope == {"distributor": "Alpha Dist"}
    assert len(again.data["plans"]) == len(snapshot["plans"])
    assert again.last_updated
    assert read_session_user(tmp_path).username == "alpha"


def test_clear_session_forgets_user_and_data(tmp_path, snapshot):
    store = AppStateStore(tmp_path)
    store.set_user(SessionUser(username="alpha"))
    store.set_data(snapshot)
    store.clear_session()
    assert store.user is None
    assert store.data == {"plans": [], "achievements": []}
    again = AppStateStore(tmp_path)
    assert again.user is None
    assert again.data["plans"] == []


def test_write_failure_keeps_memory_state(tmp_path, snapshot):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    store = AppStateStore(blocker)
    assert store.set_data(snapshot) is False
    assert len(store.data["plans"]) == len(snapshot["plans"])
    store.set_sync_url("https://backend.test/exec")
    assert store.sync_url == "https://backend.test/exec"


def test_corrupt_file_is_ignored(tmp_path):
    (tmp_path / "evpm_config.json").write_text("{not json", encoding="utf-8")
    assert AppStateStore(tmp_path).sync_url == ""


def test_consume_invite(tmp_path):
    store = AppStateStore(tmp_path)
    store.mark_synced()
    params = {"syncUrl": "https://backend.test/exec", "page": "1"}
    assert consume_invite(params, store) is True
    assert params == {"page": "1"}
    assert store.sync_url == "https://backend.test/exec"
    assert store.last_updated == ""
    assert consume_invite({}, store) is False


def test_build_invite_link():
    link = build_invite_link("http://app.test:8501/?a=1", "https://s.test/exec")
    assert link == "http://app.test:8501/?syncUrl=https%3A%2F%2Fs.test%2Fexec"
    with pytest.raises(ValueError):
        build_invite_link("http://app.test", "")
