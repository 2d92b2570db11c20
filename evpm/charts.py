from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

PACING_COLORS = {"green": "#10b981", "yellow": "#f59e0b", "red": "#ef4444"}
PLAN_COLOR = "#cbd5e1"
ACTUAL_COLOR = "#0f766e"


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def plan_vs_actual_bars(df: pd.DataFrame, *, title: Optional[str] = None, height: int = 260) -> alt.Chart:
    """Grouped plan/actual bars per ``name`` with achievement % in the tooltip."""
    long = df.melt(id_vars=["name", "full_name", "ach_pct"], value_vars=["plan", "actual"], var_name="series", value_name="value")
    order: List[str] = df["name"].astype(str).tolist()
    hover = alt.selection_point(fields=["name"], on="mouseover", empty="all")
    chart = (
        alt.Chart(long)
        .mark_bar(cornerRadiusTopLeft=3, cornerRadiusTopRight=3)
        .encode(
            x=alt.X("name:N", sort=order, title=None, axis=alt.Axis(labelAngle=-30, grid=False)),
            xOffset="series:N",
            y=alt.Y("value:Q", title=None, axis=alt.Axis(format="~s", gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("series:N", scale=alt.Scale(domain=["plan", "actual"], range=[PLAN_COLOR, ACTUAL_COLOR]), legend=alt.Legend(title=None, orient="top")),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.5)),
            tooltip=[
                alt.Tooltip("full_name:N", title="Name"),
                alt.Tooltip("series:N", title="Series"),
                alt.Tooltip("value:Q", title="Value", format=",.0f"),
                alt.Tooltip("ach_pct:Q", title="Ach %", format=".1f"),
            ],
        )
        .add_params(hover)
        .properties(height=height)
    )
    if title:
        chart = chart.properties(title=title)
    return chart
