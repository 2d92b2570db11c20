"""Plan vs achievement aggregation.

Everything here takes and returns pandas frames built from the canonical plan /
achievement columns (see ``evpm.constants``) and never mutates its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

import pandas as pd

from evpm.config import FRIDAY
from evpm.constants import (
    ACHIEVED_NUMERIC_COLUMNS,
    DEBT_COLUMNS,
    HIERARCHY_KEYS,
    METRICS,
    UNKNOWN_LABEL,
    ach_col,
    plan_col,
)
from evpm.time_gone import compute_time_gone, next_working_day, to_date

Direction = Literal["top", "bottom"]
PacingStatus = Literal["green", "yellow", "red"]

DEBT_METRIC_COLUMNS = {"all": "total", "due": "due", "overdue": "overdue"}


@dataclass(frozen=True)
class EffectiveDate:
    selected: str
    effective: str
    is_fallback: bool


def available_dates(achieved: pd.DataFrame) -> List[str]:
    if achieved is None or achieved.empty or "date" not in achieved.columns:
        return []
    days = achieved["date"].dropna().astype(str)
    return sorted(d for d in days.unique().tolist() if d)


def resolve_effective_date(selected: Optional[str], dates: List[str]) -> EffectiveDate:
    """Pick the achievement day actually shown for ``selected``.

    An exact match wins; otherwise the latest day strictly before the selection
    is used so a user browsing past the data horizon still sees the last day.
    """
    selected = str(selected or to_date(None).isoformat())
    ordered = sorted(dates)
    effective = selected
    if selected not in ordered:
        earlier = [d for d in ordered if d < selected]
        if earlier:
            effective = earlier[-1]
    return EffectiveDate(selected=selected, effective=effective, is_fallback=bool(ordered) and effective != selected)


def merge_kpis(plans: pd.DataFrame, achieved: pd.DataFrame, effective_date: str) -> pd.DataFrame:
    """Left-join each plan row with its achievement for ``effective_date`` (missing -> 0)."""
    base = plans.copy()
    if base.empty:
        for col in ACHIEVED_NUMERIC_COLUMNS:
            base[col] = pd.Series(dtype=float)
        return base
    base["_key"] = base["rep_id"].astype(str).str.strip()

    if achieved is None or achieved.empty:
        day = pd.DataFrame(columns=["_key"] + ACHIEVED_NUMERIC_COLUMNS)
    else:
        day = achieved[achieved["date"].astype(str) == str(effective_date)].copy()
        day["_key"] = day["rep_id"].astype(str).str.strip()
        day = day.drop_duplicates(subset=["_key"], keep="first")[["_key"] + ACHIEVED_NUMERIC_COLUMNS]

    merged = base.drop(columns=[c for c in ACHIEVED_NUMERIC_COLUMNS if c in base.columns]).merge(day, on="_key", how="left")
    for col in ACHIEVED_NUMERIC_COLUMNS:
        merged[col] = pd.to_numeric(merged[col], errors="coerce").fillna(0.0).astype(float)
    return merged.drop(columns=["_key"])


def compute_totals(merged: pd.DataFrame) -> Dict[str, Dict[str, float]]:
    out: Dict[str, Dict[str, float]] = {}
    for m in METRICS:
        out[m] = {
            "plan": float(merged[plan_col(m)].sum()) if plan_col(m) in merged.columns else 0.0,
            "actual": float(merged[ach_col(m)].sum()) if ach_col(m) in merged.columns else 0.0,
        }
    out["debt"] = {c: float(merged[c].sum()) if c in merged.columns else 0.0 for c in DEBT_COLUMNS}
    return out


def achievement_pct(actual: float, plan: float) -> float:
    return (actual / plan) * 100 if plan else 0.0


def short_label(value: str, key: str) -> str:
    """First two words of a hierarchy label; distributor names are kept whole."""
    if key == "distributor" or key not in HIERARCHY_KEYS:
        return value
    parts = value.strip().split()
    if len(parts) > 2:
        return f"{parts[0]} {parts[1]}"
    return value


def _group_key(merged: pd.DataFrame, key: str) -> pd.Series:
    if key not in merged.columns:
        return pd.Series([UNKNOWN_LABEL] * len(merged), index=merged.index, dtype=object)
    keys = merged[key].fillna("").astype(str).str.strip()
    return keys.mask(keys == "", UNKNOWN_LABEL)


def group_by(merged: pd.DataFrame, key: str, metric: str = "GSV", shorten: Optional[bool] = None) -> pd.DataFrame:
    """Sum plan/actual of ``metric`` per ``key`` value, dropping groups with no activity.

    ``shorten=False`` keeps full labels in ``name``; ``None`` applies ``short_label``.
    """
    cols = ["name", "full_name", "plan", "actual", "ach_pct"]
    if merged.empty:
        return pd.DataFrame(columns=cols)
    work = pd.DataFrame(
        {
            "full_name": _group_key(merged, key),
            "plan": merged[plan_col(metric)].astype(float),
            "actual": merged[ach_col(metric)].astype(float),
        }
    )
    grouped = work.groupby("full_name", sort=False).agg(plan=("plan", "sum"), actual=("actual", "sum")).reset_index()
    grouped = grouped[(grouped["plan"] != 0) | (grouped["actual"] != 0)]
    grouped["ach_pct"] = [achievement_pct(a, p) for a, p in zip(grouped["actual"], grouped["plan"])]
    grouped["name"] = grouped["full_name"] if shorten is False else grouped["full_name"].apply(lambda v: short_label(v, key))
    grouped = grouped.sort_values("plan", ascending=False, kind="mergesort")
    return grouped[cols].reset_index(drop=True)


def rank_groups(merged: pd.DataFrame, key: str = "distributor", metric: str = "GSV", n: int = 5, direction: Direction = "top") -> pd.DataFrame:
    """Top / bottom ``n`` groups by achievement percentage (stable on ties)."""
    cols = ["name", "full_name", "plan", "actual", "ach_pct"]
    if merged.empty:
        return pd.DataFrame(columns=cols)
    work = pd.DataFrame(
        {
            "full_name": _group_key(merged, key),
            "plan": merged[plan_col(metric)].astype(float),
            "actual": merged[ach_col(metric)].astype(float),
        }
    )
    grouped = work.groupby("full_name", sort=False).agg(plan=("plan", "sum"), actual=("actual", "sum")).reset_index()
    grouped["ach_pct"] = [achievement_pct(a, p) for a, p in zip(grouped["actual"], grouped["plan"])]
    grouped["name"] = grouped["full_name"].apply(lambda v: short_label(v, key))
    if direction == "bottom":
        # Zero-achievement groups with a plan are the bottom of the table, not noise.
        grouped = grouped[grouped["plan"] > 0].sort_values("ach_pct", ascending=True, kind="mergesort")
    else:
        grouped = grouped[(grouped["plan"] > 0) | (grouped["actual"] > 0)].sort_values("ach_pct", ascending=False, kind="mergesort")
    return grouped[cols].head(max(0, int(n))).reset_index(drop=True)


def debt_shares(merged: pd.DataFrame, key: str, debt_metric: str = "all") -> pd.DataFrame:
    """Debt per group with each group's share of the visible total for ``debt_metric``."""
    cols = ["name", "full_name", "due", "overdue", "total", "global_share"]
    metric_col = DEBT_METRIC_COLUMNS.get(debt_metric, "total")
    if merged.empty:
        return pd.DataFrame(columns=cols)
    work = pd.DataFrame(
        {
            "full_name": _group_key(merged, key),
            "due": merged["due"].astype(float),
            "overdue": merged["overdue"].astype(float),
            "total": merged["total_debt"].astype(float),
        }
    )
    grouped = work.groupby("full_name", sort=False).sum().reset_index()
    grouped = grouped[grouped[metric_col] > 0]
    grand_total = float(grouped[metric_col].sum())
    grouped["global_share"] = grouped[metric_col] / grand_total * 100 if grand_total > 0 else 0.0
    grouped["name"] = grouped["full_name"].apply(lambda v: short_label(v, key))
    grouped = grouped.sort_values(metric_col, ascending=False, kind="mergesort")
    return grouped[cols].reset_index(drop=True)


def debt_percentages(totals: Dict[str, float]) -> Dict[str, float]:
    total = float(totals.get("total_debt", 0) or 0)
    if total == 0:
        return {"due": 0.0, "overdue": 0.0}
    return {"due": totals.get("due", 0.0) / total * 100, "overdue": totals.get("overdue", 0.0) / total * 100}


def daily_progress(
    plans: pd.DataFrame,
    achieved: pd.DataFrame,
    metric: str,
    effective_date: str,
    *,
    off_weekday: int = FRIDAY,
) -> List[Dict[str, Any]]:
    """Achieved-per-day series for the in-scope reps with a time-gone target line.

    A trailing projection point (``value=None``) marks the next working day's
    target so the chart shows where achievement should land next.
    """
    total_plan = float(plans[plan_col(metric)].sum()) if not plans.empty else 0.0
    if plans.empty or achieved is None or achieved.empty:
        return []

    allowed = set(plans["rep_id"].astype(str).str.strip())
    rel = achieved.assign(_key=achieved["rep_id"].astype(str).str.strip())
    rel = rel[rel["_key"].isin(allowed) & (rel["date"].astype(str) <= str(effective_date))]
    rel = rel.drop_duplicates(subset=["_key", "date"], keep="first")
    by_day = rel.groupby("date")[ach_col(metric)].sum().sort_index()

    points: List[Dict[str, Any]] = []
    for day, value in by_day.items():
        pct = compute_time_gone(day, off_weekday=off_weekday).percentage
        points.append({"date": str(day), "value": float(value), "target": total_plan * pct / 100, "is_projection": False})

    if points and total_plan > 0:
        nxt = next_working_day(effective_date, off_weekday=off_weekday)
        if nxt is not None:
            pct = compute_time_gone(nxt, off_weekday=off_weekday).percentage
            points.append({"date": nxt.isoformat(), "value": None, "target": total_plan * pct / 100, "is_projection": True})
    return points


def peer_view(plans: pd.DataFrame, achieved: pd.DataFrame, rep_id: str, effective_date: str) -> pd.DataFrame:
    """Merged rows for every rep sharing ``rep_id``'s team leader (the rep alone if none)."""
    if plans.empty:
        return merge_kpis(plans, achieved, effective_date)
    ids = plans["rep_id"].astype(str).str.strip()
    me = plans[ids == str(rep_id).strip()]
    if me.empty:
        return merge_kpis(me, achieved, effective_date)
    team_leader = str(me.iloc[0]["team_leader"] or "")
    if not team_leader:
        return merge_kpis(me, achieved, effective_date)
    return merge_kpis(plans[plans["team_leader"] == team_leader], achieved, effective_date)


def pacing_status(ach_pct: float, time_gone_pct: float, cap: float = 80.0) -> PacingStatus:
    gap = min(time_gone_pct, cap) - ach_pct
    if gap <= 0:
        return "green"
    if gap <= 10:
        return "yellow"
    return "red"
