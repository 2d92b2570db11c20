from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from evpm.session import SessionUser
from evpm.store import AppStateStore
from evpm_api.main import app


@pytest.fixture
def client(state_dir, snapshot):
    AppStateStore(state_dir).set_data(snapshot)
    return TestClient(app)


def test_meta_dates(client):
    res = client.get("/meta/dates")
    assert res.status_code == 200
    assert res.json() == {"dates": ["2024-06-08", "2024-06-09"], "latest": "2024-06-09"}


def test_meta_options(client):
    res = client.get("/meta/options", params={"attribute": "distributor"})
    assert res.json()["values"] == ["Alpha Dist", "Beta Dist", "Gamma Dist"]
    assert client.get("/meta/options", params={"attribute": "colour"}).status_code == 400


def test_overview_unrestricted(client):
    res = client.post("/overview", json={"selected_date": "2024-06-09"})
    assert res.status_code == 200
    body = res.json()
    assert body["kpis"][0]["actual"] == 1150.0
    assert body["date"]["is_fallback"] is False
    assert body["filters"]["selected_date"] == "2024-06-09"


def test_scope_comes_from_session_user(client, state_dir):
    AppStateStore(state_dir).set_user(SessionUser(username="alpha", auth_token="tok", scope={"distributor": "Alpha Dist"}))
    body = client.post("/overview", json={"selection": {"distributor": ["Beta Dist"]}, "selected_date": "2024-06-09"}).json()
    assert body["kpis"][0]["plan"] == 1500.0
    assert body["visibility"]["show_channel"] is False
    opts = client.get("/meta/options", params={"attribute": "rep_name"}).json()
    assert opts["values"] == ["Ahmed Ali Hassan", "Mona Adel"]


@pytest.mark.parametrize("path", ["/performance", "/debt", "/daily", "/debug", "/options"])
def test_pages_respond(client, path):
    res = client.post(path, json={"selected_date": "2024-06-09"})
    assert res.status_code == 200
    assert "filters" in res.json()


def test_invalid_body_is_rejected(client):
    assert client.post("/overview", json={"daily_kpi": "NOPE"}).status_code == 422


def test_export_csv(client):
    res = client.post("/export/performance", json={"selected_date": "2024-06-09", "breakdown_key": "distributor"})
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    lines = res.text.strip().splitlines()
    assert lines[0] == "name,full_name,plan,actual,ach_pct"
    assert len(lines) == 4


def test_errors_are_reported_as_json(client, monkeypatch):
    import evpm_api.main as api

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(api, "compute_overview", broken)
    res = client.post("/overview", json={})
    assert res.status_code == 500
    assert res.json() == {"error": "boom", "type": "RuntimeError"}


def test_unpadded_date_is_not_a_fallback(client):
    body = client.post("/overview", json={"selected_date": "2024-6-9"}).json()
    assert body["date"] == {"selected": "2024-06-09", "effective": "2024-06-09", "is_fallback": False}


def test_invalid_date_without_data_uses_today(state_dir):
    res = TestClient(app).post("/overview", json={"selected_date": "junk"})
    assert res.status_code == 200
    assert res.json()["date"]["selected"] == date.today().isoformat()
