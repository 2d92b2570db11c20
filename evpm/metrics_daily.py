from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import altair as alt
import pandas as pd

from evpm.aggregation import daily_progress
from evpm.charts import ACTUAL_COLOR, to_vega_spec
from evpm.config import get_settings
from evpm.filters import DashboardFilters


def compute_daily(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    plans: pd.DataFrame = ctx.get("filtered_plans", pd.DataFrame())
    achievements: pd.DataFrame = ctx.get("achievements", pd.DataFrame())
    eff = ctx["effective_date"]
    metric = filters.daily_kpi

    points = daily_progress(plans, achievements, metric, eff.effective, off_weekday=get_settings().off_weekday)
    payload: Dict[str, Any] = {"filters": asdict(filters), "metric": metric, "points": points, "charts": {}}
    if not points:
        return payload

    df = pd.DataFrame(points)
    actual = df[~df["is_projection"]]
    base = alt.Chart(df).encode(x=alt.X("date:T", title=None, axis=alt.Axis(format="%d %b", grid=False)))
    target = base.mark_line(strokeDash=[6, 4], color="#94a3b8", point=True).encode(
        y=alt.Y("target:Q", title=metric, axis=alt.Axis(format="~s", gridDash=[4, 4], domain=False, ticks=False)),
        tooltip=[alt.Tooltip("date:T", title="Date"), alt.Tooltip("target:Q", title="Target", format=",.0f"), alt.Tooltip("is_projection:N", title="Projection")],
    )
    value = (
        alt.Chart(actual)
        .mark_line(color=ACTUAL_COLOR, point={"filled": True, "size": 60})
        .encode(
            x="date:T",
            y="value:Q",
            tooltip=[alt.Tooltip("date:T", title="Date"), alt.Tooltip("value:Q", title=metric, format=",.0f")],
        )
    )
    payload["charts"]["daily"] = to_vega_spec((target + value).properties(height=260, title=f"Daily {metric} vs Target"))
    return payload
