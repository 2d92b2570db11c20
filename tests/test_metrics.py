from __future__ import annotations

from datetime import date

import pytest

from evpm.data import prepare_context
from evpm.filters import normalize_filters
from evpm.metrics_daily import compute_daily
from evpm.metrics_debt import compute_debt
from evpm.metrics_debug import compute_debug
from evpm.metrics_overview import compute_overview
from evpm.metrics_performance import compute_performance


def build(data_ctx, raw=None, scope=None):
    raw = {"selected_date": "2024-06-10", **(raw or {})}
    f = normalize_filters(raw, available_dates=data_ctx["dates"], scope=scope or {}, today=date(2024, 6, 10))
    return f, prepare_context(f, data_ctx)


def test_overview_admin(data_ctx):
    f, ctx = build(data_ctx)
    payload = compute_overview(f, ctx)
    assert payload["date"] == {"selected": "2024-06-10", "effective": "2024-06-09", "is_fallback": True}
    gsv = payload["kpis"][0]
    assert gsv["metric"] == "GSV"
    assert gsv["plan"] == 4300.0 and gsv["actual"] == 1150.0
    # 26.7% achieved against 30.8% time gone
    assert gsv["status"] == "yellow"
    assert gsv["plan_display"] == "4.3K"
    assert payload["debt"]["total"] == 1100.0
    assert payload["time_gone"]["total_days"] == 26
    assert payload["visibility"] == {"show_channel": True, "show_ranking": True, "show_breakdown": True, "show_debt_breakdown": True}
    assert "layer" in payload["charts"]["time_gone"]


def test_overview_distributor_scope(data_ctx):
    f, ctx = build(data_ctx, scope={"distributor": "Alpha Dist"})
    payload = compute_overview(f, ctx)
    assert payload["kpis"][0]["plan"] == 1500.0
    assert payload["visibility"]["show_channel"] is False
    assert payload["visibility"]["show_ranking"] is False


def test_performance_admin(data_ctx):
    f, ctx = build(data_ctx, {"top_n": 2})
    payload = compute_performance(f, ctx)
    assert payload["hierarchy"]["key"] == "regional_manager"
    assert payload["hierarchy"]["title"] == "RSM Performance"
    assert [r["full_name"] for r in payload["ranking"]["top"]] == ["Alpha Dist", "Beta Dist"]
    assert [r["full_name"] for r in payload["ranking"]["bottom"]] == ["Gamma Dist", "Beta Dist"]
    assert {"channel", "hierarchy", "top", "bottom"} <= set(payload["charts"])
    assert payload["peers"] is None


def test_performance_drill_key_override(data_ctx):
    f, ctx = build(data_ctx, {"breakdown_key": "distributor"})
    payload = compute_performance(f, ctx)
    assert payload["hierarchy"]["key"] == "distributor"
    assert [r["full_name"] for r in payload["hierarchy"]["rows"]] == ["Beta Dist", "Alpha Dist", "Gamma Dist"]


def test_performance_salesman_sees_peers(data_ctx):
    scope = {"rep_id": "101", "team_leader": "Tarek Saad Omar", "distributor": "Alpha Dist"}
    f, ctx = build(data_ctx, scope=scope)
    payload = compute_performance(f, ctx)
    assert payload["channel"] is None
    assert payload["ranking"] is None
    assert payload["hierarchy"]["visible"] is False
    names = {r["full_name"] for r in payload["peers"]["rows"]}
    assert names == {"Ahmed Ali Hassan", "Mona Adel"}


def test_debt_breakdown(data_ctx):
    f, ctx = build(data_ctx, {"debt_key": "distributor", "debt_metric": "overdue"})
    payload = compute_debt(f, ctx)
    assert payload["title"] == "Overdue by Distributor"
    assert [r["full_name"] for r in payload["rows"]] == ["Beta Dist", "Alpha Dist"]
    assert payload["rows"][0]["global_share"] == pytest.approx(600 / 700 * 100)
    assert "breakdown" in payload["charts"]


def test_debt_hidden_for_salesman(data_ctx):
    f, ctx = build(data_ctx, scope={"rep_id": "101"})
    payload = compute_debt(f, ctx)
    assert payload["visible"] is False
    assert payload["rows"] == []


def test_daily(data_ctx):
    f, ctx = build(data_ctx, {"daily_kpi": "GSV"})
    payload = compute_daily(f, ctx)
    assert [p["is_projection"] for p in payload["points"]] == [False, False, True]
    assert "layer" in payload["charts"]["daily"]


def test_debug(data_ctx):
    f, ctx = build(data_ctx)
    payload = compute_debug(f, ctx)
    assert payload["row_counts"]["plan_rows"] == 4
    assert payload["cleaning_checks"] == {"rejected_plan_rows": 1, "rejected_achievement_rows": 2}
    assert [r["date"] for r in payload["date_coverage"]] == ["2024-06-08", "2024-06-09"]
    assert [r["rep_id"] for r in payload["unmatched_achievements"]] == ["999"]
