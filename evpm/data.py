from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from evpm.aggregation import available_dates, compute_totals, merge_kpis, peer_view, resolve_effective_date
from evpm.config import get_settings
from evpm.constants import (
    ACHIEVED_COLUMNS,
    ACHIEVED_NUMERIC_COLUMNS,
    ACHIEVED_STRING_COLUMNS,
    PLAN_COLUMNS,
    PLAN_NUMERIC_COLUMNS,
    PLAN_STRING_COLUMNS,
)
from evpm.filters import DashboardFilters, ViewTier, apply_scope, apply_selection, normalize_filters
from evpm.hierarchy import current_depth
from evpm.store import DATA_FILE
from evpm.time_gone import compute_time_gone

logger = logging.getLogger(__name__)

DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
NA_TOKENS = {"nan", "none", "null", "<na>", "na", "n/a"}


def normalize_text(value: object) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    s = str(value).strip()
    return "" if s.lower() in NA_TOKENS else s


def normalize_rep_id(value: object) -> str:
    """Representative codes often arrive from Excel as floats (``101.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    s = normalize_text(value)
    if re.fullmatch(r"\d+\.0+", s):
        return s.split(".")[0]
    return s


def normalize_day(value: object) -> Optional[str]:
    """Day portion of a date-like value as ``YYYY-MM-DD``, or ``None`` when invalid."""
    if value is None:
        return None
    if isinstance(value, (datetime, pd.Timestamp)):
        if pd.isna(value):
            return None
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = normalize_text(value).split("T")[0].split(" ")[0]
    if not DAY_PATTERN.match(s):
        return None
    try:
        return date.fromisoformat(s).isoformat()
    except ValueError:
        return None


def rename_raw_columns(df: pd.DataFrame, mapping: Mapping[str, str]) -> pd.DataFrame:
    """Map raw headers to canonical names; canonical names pass through, everything else is dropped."""
    canonical = set(mapping.values())
    renamed = {}
    for col in df.columns:
        key = str(col).strip()
        if key in mapping:
            renamed[col] = mapping[key]
        elif key in canonical:
            renamed[col] = key
    out = df[list(renamed)].rename(columns=renamed)
    return out.loc[:, ~out.columns.duplicated()]


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col not in df.columns:
            df[col] = 0.0
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0).clip(lower=0.0).astype(float)
    return df


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col not in df.columns:
            df[col] = ""
        df[col] = df[col].apply(normalize_text).astype(object)
    return df


def _frame(records: Optional[Iterable[Mapping[str, Any]]]) -> pd.DataFrame:
    if records is None:
        return pd.DataFrame()
    if isinstance(records, pd.DataFrame):
        return records.copy()
    return pd.DataFrame.from_records(list(records))


def normalize_plans(records: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[pd.DataFrame, int]:
    """Validate raw plan records into the canonical plan frame.

    Returns the frame and the number of rejected rows (blank or duplicate rep ids).
    """
    raw = _frame(records)
    df = rename_raw_columns(raw, PLAN_COLUMNS) if not raw.empty else pd.DataFrame()
    df = coerce_str_safe(df, PLAN_STRING_COLUMNS)
    df = numericize(df, PLAN_NUMERIC_COLUMNS)
    df["rep_id"] = df["rep_id"].apply(normalize_rep_id)
    df = df[PLAN_STRING_COLUMNS + PLAN_NUMERIC_COLUMNS]

    before = len(df)
    df = df[df["rep_id"] != ""]
    dupes = df["rep_id"].duplicated(keep="first")
    if dupes.any():
        logger.warning("Dropping %d duplicate plan rows (rep ids: %s)", int(dupes.sum()), sorted(df.loc[dupes, "rep_id"].unique())[:10])
        df = df[~dupes]
    return df.reset_index(drop=True), before - len(df)


def normalize_achievements(records: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[pd.DataFrame, int]:
    """Validate raw achievement records; rows without a rep id or a valid day are rejected."""
    raw = _frame(records)
    df = rename_raw_columns(raw, ACHIEVED_COLUMNS) if not raw.empty else pd.DataFrame()
    if "date" in df.columns:
        df["date"] = df["date"].apply(normalize_day)
    df = coerce_str_safe(df, ACHIEVED_STRING_COLUMNS)
    df = numericize(df, ACHIEVED_NUMERIC_COLUMNS)
    df["rep_id"] = df["rep_id"].apply(normalize_rep_id)
    df = df[ACHIEVED_STRING_COLUMNS + ACHIEVED_NUMERIC_COLUMNS]

    before = len(df)
    df = df[(df["rep_id"] != "") & (df["date"] != "")]
    rejected = before - len(df)
    if rejected:
        logger.warning("Rejected %d achievement rows without rep id or valid date", rejected)
    return df.reset_index(drop=True), rejected


def ingest_snapshot(payload: Optional[Mapping[str, Any]]) -> Dict[str, object]:
    payload = payload or {}
    plans, rejected_plans = normalize_plans(payload.get("plans") or [])
    achievements, rejected_ach = normalize_achievements(payload.get("achievements") or [])
    return {
        "plans": plans,
        "achievements": achievements,
        "dates": available_dates(achievements),
        "rejected_plans": rejected_plans,
        "rejected_achievements": rejected_ach,
    }


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def format_number(value: object) -> str:
    """Compact number like ``1.2K`` / ``3.4M`` / ``1.2B``; zero and missing render as ``0``."""
    if value is None or pd.isna(value) or float(value) == 0:
        return "0"
    v = float(value)
    units = ((1.0, ""), (1e3, "K"), (1e6, "M"), (1e9, "B"), (1e12, "T"))
    idx = 0
    while idx + 1 < len(units) and abs(v) >= units[idx + 1][0]:
        idx += 1
    scaled = round_half_up(v / units[idx][0], 1)
    # 999.96K rounds to 1000K; carry into the next unit.
    if abs(scaled) >= 1000 and idx + 1 < len(units):
        idx += 1
        scaled = round_half_up(v / units[idx][0], 1)
    return f"{scaled:g}{units[idx][1]}"


def format_currency(value: object) -> str:
    # Currency code is dropped from the compact form.
    return format_number(value)


def format_percent(value: object, decimals: int = 1) -> str:
    if value is None or pd.isna(value):
        return "N/A"
    return f"{float(value):.{decimals}f}%"


def data_file(state_dir: Optional[Path] = None) -> Path:
    return Path(state_dir or get_settings().state_dir) / DATA_FILE


def file_signature(path: Path) -> Tuple[str, float]:
    return (str(path), path.stat().st_mtime)


@lru_cache(maxsize=4)
def _load_dashboard_data_cached(files_sig: Tuple[str, float]) -> Dict[str, object]:
    path = Path(files_sig[0])
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    ctx = ingest_snapshot(payload)
    logger.info("Loaded snapshot %s: %d plans, %d achievements", path.name, len(ctx["plans"]), len(ctx["achievements"]))
    return ctx


def load_dashboard_data(state_dir: Optional[Path] = None) -> Dict[str, object]:
    path = data_file(state_dir)
    if not path.exists():
        return ingest_snapshot({})
    return _load_dashboard_data_cached(file_signature(path))


def prepare_context(filters: dict | DashboardFilters, data_ctx: Dict[str, object], *, today: Optional[date] = None) -> Dict[str, object]:
    plans: pd.DataFrame = data_ctx.get("plans", pd.DataFrame())
    achievements: pd.DataFrame = data_ctx.get("achievements", pd.DataFrame())
    dates: List[str] = list(data_ctx.get("dates") or available_dates(achievements))
    settings = get_settings()

    filt = filters if isinstance(filters, DashboardFilters) else normalize_filters(filters, available_dates=dates, today=today)

    scoped_plans = apply_scope(plans, filt.scope)
    filtered_plans = apply_selection(scoped_plans, filt.selection)

    eff = resolve_effective_date(filt.selected_date, dates)
    merged = merge_kpis(filtered_plans, achievements, eff.effective)

    tier = ViewTier.from_scope(filt.scope)
    peers = merged
    if tier.is_salesman:
        peers = peer_view(plans, achievements, filt.scope.get("rep_id", ""), eff.effective)

    return {
        "filters": filt,
        "plans": plans,
        "achievements": achievements,
        "dates": dates,
        "scoped_plans": scoped_plans,
        "filtered_plans": filtered_plans,
        "effective_date": eff,
        "merged": merged,
        "peer_merged": peers,
        "totals": compute_totals(merged),
        "time_gone": compute_time_gone(eff.effective, off_weekday=settings.off_weekday),
        "depth": current_depth(filt.selection),
        "view": tier,
        "rejected_plans": int(data_ctx.get("rejected_plans", 0) or 0),
        "rejected_achievements": int(data_ctx.get("rejected_achievements", 0) or 0),
    }
