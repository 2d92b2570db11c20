from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import altair as alt
import pandas as pd

from evpm.aggregation import group_by, rank_groups
from evpm.charts import PACING_COLORS, plan_vs_actual_bars, to_vega_spec
from evpm.filters import DashboardFilters, ViewTier
from evpm.hierarchy import DrillDown


def _records(df: pd.DataFrame) -> list:
    return df.to_dict(orient="records") if not df.empty else []


def ranking_chart(df: pd.DataFrame, *, title: str, color: str) -> alt.Chart:
    order = df["name"].astype(str).tolist()
    return (
        alt.Chart(df)
        .mark_bar(color=color, cornerRadiusTopRight=3, cornerRadiusBottomRight=3)
        .encode(
            y=alt.Y("name:N", sort=order, title=None, axis=alt.Axis(grid=False)),
            x=alt.X("ach_pct:Q", title="Ach %", axis=alt.Axis(format=".0f", gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[
                alt.Tooltip("full_name:N", title="Distributor"),
                alt.Tooltip("plan:Q", title="Plan", format=",.0f"),
                alt.Tooltip("actual:Q", title="Actual", format=",.0f"),
                alt.Tooltip("ach_pct:Q", title="Ach %", format=".1f"),
            ],
        )
        .properties(title=title, height=alt.Step(22))
    )


def compute_performance(filters: DashboardFilters, ctx: Dict[str, Any], *, drill_key: Optional[str] = None) -> Dict[str, Any]:
    merged: pd.DataFrame = ctx.get("merged", pd.DataFrame())
    peers: pd.DataFrame = ctx.get("peer_merged", merged)
    view: ViewTier = ctx["view"]

    drill = DrillDown.from_selection(filters.selection, drill_key or filters.breakdown_key)
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "channel": None,
        "hierarchy": {
            "key": drill.key,
            "title": drill.title,
            "visible": drill.breakdown_visible,
            "levels": [{"key": lvl.key, "label": lvl.label} for lvl in drill.options],
            "rows": [],
        },
        "peers": None,
        "ranking": None,
        "charts": {},
    }
    charts: Dict[str, Any] = payload["charts"]

    if view.show_channel:
        channel = group_by(merged, "channel", filters.channel_kpi)
        payload["channel"] = {"metric": filters.channel_kpi, "rows": _records(channel)}
        if not channel.empty:
            charts["channel"] = to_vega_spec(plan_vs_actual_bars(channel, title=f"Channel {filters.channel_kpi}"))

    if drill.breakdown_visible and drill.key:
        breakdown = group_by(merged, drill.key, filters.breakdown_kpi)
        payload["hierarchy"]["rows"] = _records(breakdown)
        if not breakdown.empty:
            charts["hierarchy"] = to_vega_spec(plan_vs_actual_bars(breakdown, title=f"{drill.title} ({filters.breakdown_kpi})"))

    if view.is_salesman:
        team = group_by(peers, "rep_name", filters.breakdown_kpi)
        payload["peers"] = {"metric": filters.breakdown_kpi, "rows": _records(team)}
        if not team.empty:
            charts["peers"] = to_vega_spec(plan_vs_actual_bars(team, title="Team Performance"))

    if view.show_ranking:
        top = rank_groups(merged, "distributor", filters.ranking_kpi, filters.top_n, "top")
        bottom = rank_groups(merged, "distributor", filters.ranking_kpi, filters.top_n, "bottom")
        payload["ranking"] = {"metric": filters.ranking_kpi, "top": _records(top), "bottom": _records(bottom)}
        if not top.empty:
            charts["top"] = to_vega_spec(ranking_chart(top, title=f"Top {filters.top_n} Distributors", color=PACING_COLORS["green"]))
        if not bottom.empty:
            charts["bottom"] = to_vega_spec(ranking_chart(bottom, title=f"Bottom {filters.top_n} Distributors", color=PACING_COLORS["red"]))

    return payload
