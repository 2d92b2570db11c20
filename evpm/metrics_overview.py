from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import pandas as pd

from evpm.aggregation import EffectiveDate, achievement_pct, debt_percentages, pacing_status
from evpm.charts import ACTUAL_COLOR, PLAN_COLOR, to_vega_spec
from evpm.config import get_settings
from evpm.constants import METRICS
from evpm.data import format_currency, format_number, format_percent
from evpm.filters import DashboardFilters, ViewTier
from evpm.hierarchy import DrillDown
from evpm.time_gone import TimeGone


def _kpi_card(metric: str, totals: Dict[str, float], time_gone_pct: float, cap: float) -> Dict[str, Any]:
    plan = float(totals.get("plan", 0.0))
    actual = float(totals.get("actual", 0.0))
    pct = achievement_pct(actual, plan)
    return {
        "metric": metric,
        "plan": plan,
        "actual": actual,
        "ach_pct": pct,
        "target_pct": min(time_gone_pct, cap),
        "status": pacing_status(pct, time_gone_pct, cap),
        "plan_display": format_number(plan),
        "actual_display": format_number(actual),
        "ach_pct_display": format_percent(pct),
    }


def _debt_card(debt: Dict[str, float]) -> Dict[str, Any]:
    pcts = debt_percentages(debt)
    return {
        "due": debt.get("due", 0.0),
        "overdue": debt.get("overdue", 0.0),
        "total": debt.get("total_debt", 0.0),
        "due_pct": pcts["due"],
        "overdue_pct": pcts["overdue"],
        "total_display": format_currency(debt.get("total_debt", 0.0)),
        "due_display": format_currency(debt.get("due", 0.0)),
        "overdue_display": format_currency(debt.get("overdue", 0.0)),
    }


def time_gone_donut(time_gone: TimeGone) -> alt.LayerChart:
    pct = round(time_gone.percentage, 1)
    data = pd.DataFrame({"part": ["Gone", "Remaining"], "value": [pct, round(100 - pct, 1)]})
    arc = (
        alt.Chart(data)
        .mark_arc(innerRadius=55, outerRadius=75)
        .encode(
            theta=alt.Theta("value:Q", stack=True),
            color=alt.Color("part:N", scale=alt.Scale(domain=["Gone", "Remaining"], range=[ACTUAL_COLOR, PLAN_COLOR]), legend=None),
            tooltip=[alt.Tooltip("part:N", title=""), alt.Tooltip("value:Q", title="%", format=".1f")],
        )
    )
    label = alt.Chart(pd.DataFrame({"text": [f"{pct:.0f}%"]})).mark_text(fontSize=22, fontWeight="bold").encode(text="text:N")
    return (arc + label).properties(height=180, width=180)


def visibility(filters: DashboardFilters, view: ViewTier) -> Dict[str, bool]:
    breakdown = DrillDown.from_selection(filters.selection, filters.breakdown_key)
    debt = DrillDown.from_selection(filters.selection, filters.debt_key, terminal_empty=True)
    return {
        "show_channel": view.show_channel,
        "show_ranking": view.show_ranking,
        "show_breakdown": breakdown.breakdown_visible,
        "show_debt_breakdown": debt.breakdown_visible,
    }


def compute_overview(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    settings = get_settings()
    totals: Dict[str, Dict[str, float]] = ctx["totals"]
    time_gone: TimeGone = ctx["time_gone"]
    eff: EffectiveDate = ctx["effective_date"]
    view: ViewTier = ctx["view"]

    cards: List[Dict[str, Any]] = [_kpi_card(m, totals[m], time_gone.percentage, settings.pacing_cap) for m in METRICS]

    return {
        "filters": asdict(filters),
        "date": {"selected": eff.selected, "effective": eff.effective, "is_fallback": eff.is_fallback},
        "time_gone": asdict(time_gone),
        "kpis": cards,
        "debt": _debt_card(totals["debt"]),
        "rows": int(len(ctx.get("merged", pd.DataFrame()))),
        "view": asdict(view),
        "visibility": visibility(filters, view),
        "charts": {"time_gone": to_vega_spec(time_gone_donut(time_gone))},
    }
