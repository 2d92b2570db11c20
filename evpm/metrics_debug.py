from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from evpm.filters import DashboardFilters


def compute_debug(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    plans: pd.DataFrame = ctx.get("plans", pd.DataFrame())
    achievements: pd.DataFrame = ctx.get("achievements", pd.DataFrame())
    eff = ctx["effective_date"]
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "row_counts": {
            "plan_rows": int(len(plans)),
            "achievement_rows": int(len(achievements)),
            "scoped_plan_rows": int(len(ctx.get("scoped_plans", pd.DataFrame()))),
            "filtered_plan_rows": int(len(ctx.get("filtered_plans", pd.DataFrame()))),
        },
        "cleaning_checks": {
            "rejected_plan_rows": int(ctx.get("rejected_plans", 0) or 0),
            "rejected_achievement_rows": int(ctx.get("rejected_achievements", 0) or 0),
        },
        "effective_date": asdict(eff),
        "date_coverage": [],
        "unmatched_achievements": [],
    }

    if not achievements.empty:
        cov = (
            achievements.groupby("date")
            .agg(rows=("rep_id", "size"), reps=("rep_id", "nunique"), ach_gsv=("ach_gsv", "sum"))
            .reset_index()
            .sort_values("date")
        )
        payload["date_coverage"] = cov.to_dict(orient="records")

        known = set(plans["rep_id"].astype(str).str.strip()) if not plans.empty else set()
        unmatched = achievements[~achievements["rep_id"].astype(str).str.strip().isin(known)]
        if not unmatched.empty:
            top = unmatched.groupby(["rep_id", "rep_name"]).size().reset_index(name="rows").sort_values("rows", ascending=False, kind="mergesort").head(20)
            payload["unmatched_achievements"] = top.to_dict(orient="records")
    return payload
