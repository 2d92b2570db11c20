from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import altair as alt
import pandas as pd

from evpm.aggregation import DEBT_METRIC_COLUMNS, debt_percentages, debt_shares
from evpm.charts import to_vega_spec
from evpm.filters import DashboardFilters
from evpm.hierarchy import DrillDown

DEBT_LABELS = {"all": "Total Debt", "due": "Due", "overdue": "Overdue"}


def compute_debt(filters: DashboardFilters, ctx: Dict[str, Any], *, drill_key: Optional[str] = None) -> Dict[str, Any]:
    merged: pd.DataFrame = ctx.get("merged", pd.DataFrame())
    debt_totals: Dict[str, float] = ctx["totals"]["debt"]
    drill = DrillDown.from_selection(filters.selection, drill_key or filters.debt_key, terminal_empty=True)

    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "totals": {**debt_totals, **{f"{k}_pct": v for k, v in debt_percentages(debt_totals).items()}},
        "metric": filters.debt_metric,
        "key": drill.key,
        "title": f"{DEBT_LABELS[filters.debt_metric]} by {drill.label}",
        "visible": drill.breakdown_visible,
        "levels": [{"key": lvl.key, "label": lvl.label} for lvl in drill.options],
        "rows": [],
        "charts": {},
    }
    if not drill.breakdown_visible or not drill.key:
        return payload

    shares = debt_shares(merged, drill.key, filters.debt_metric)
    payload["rows"] = shares.to_dict(orient="records") if not shares.empty else []
    if shares.empty:
        return payload

    value_col = DEBT_METRIC_COLUMNS[filters.debt_metric]
    order = shares["name"].astype(str).tolist()
    hover = alt.selection_point(fields=["name"], on="mouseover", empty="all")
    bars = (
        alt.Chart(shares)
        .mark_bar(color="#f97316", cornerRadiusTopRight=3, cornerRadiusBottomRight=3)
        .encode(
            y=alt.Y("name:N", sort=order, title=None, axis=alt.Axis(grid=False)),
            x=alt.X(f"{value_col}:Q", title=DEBT_LABELS[filters.debt_metric], axis=alt.Axis(format="~s", gridDash=[4, 4], domain=False, ticks=False)),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.6)),
            tooltip=[
                alt.Tooltip("full_name:N", title=drill.label),
                alt.Tooltip("due:Q", title="Due", format=",.0f"),
                alt.Tooltip("overdue:Q", title="Overdue", format=",.0f"),
                alt.Tooltip("total:Q", title="Total", format=",.0f"),
                alt.Tooltip("global_share:Q", title="Share %", format=".1f"),
            ],
        )
        .add_params(hover)
        .properties(title=payload["title"], height=alt.Step(22))
    )
    payload["charts"]["breakdown"] = to_vega_spec(bars)
    return payload
