from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd

from evpm.constants import FILTER_KEYS, METRICS, normalize_metric
from evpm.hierarchy import MAX_DEPTH, available_levels, current_depth

DEBT_METRICS = ("all", "due", "overdue")


@dataclass(frozen=True)
class DashboardFilters:
    selection: Dict[str, List[str]] = field(default_factory=dict)
    scope: Dict[str, str] = field(default_factory=dict)
    selected_date: Optional[str] = None
    daily_kpi: str = "GSV"
    channel_kpi: str = "GSV"
    ranking_kpi: str = "GSV"
    breakdown_kpi: str = "GSV"
    breakdown_key: Optional[str] = None
    debt_key: Optional[str] = None
    debt_metric: str = "all"
    top_n: int = 5


@dataclass(frozen=True)
class ViewTier:
    """Which cards a session may see; derived from the access scope keys, never stored."""

    is_salesman: bool = False
    is_team_leader: bool = False
    is_sm_view: bool = False
    is_restricted: bool = False
    is_asm_view: bool = False

    @classmethod
    def from_scope(cls, scope: Mapping[str, str]) -> "ViewTier":
        has = {k for k, v in scope.items() if v}
        is_salesman = "rep_id" in has
        is_team_leader = "team_leader" in has
        return cls(
            is_salesman=is_salesman,
            is_team_leader=is_team_leader,
            is_sm_view="sales_manager" in has and "distributor" not in has,
            is_restricted="distributor" in has or is_salesman or is_team_leader,
            is_asm_view="distributor" in has and not is_salesman,
        )

    @property
    def show_channel(self) -> bool:
        return not self.is_restricted

    @property
    def show_ranking(self) -> bool:
        return not self.is_restricted and not self.is_sm_view


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    out: List[str] = []
    for v in values:
        if v is None:
            continue
        s = str(v).strip()
        if s and s not in out:
            out.append(s)
    return out


def pinned_selection(scope: Mapping[str, str]) -> Dict[str, List[str]]:
    selection: Dict[str, List[str]] = {k: [] for k in FILTER_KEYS}
    for key, value in scope.items():
        if value:
            selection[key] = [str(value)]
    return selection


def parse_day(value: object) -> Optional[str]:
    """``YYYY-MM-DD`` for a date or ISO-like string (unpadded parts allowed), else ``None``."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value or "").strip().split("T")[0].split(" ")[0]
    try:
        return datetime.strptime(s, "%Y-%m-%d").date().isoformat()
    except ValueError:
        return None


def initial_date(dates: List[str], today: Optional[date] = None) -> str:
    """Today when it has achievement data, else the latest available day (else today)."""
    today_s = (today or date.today()).isoformat()
    if dates and today_s not in dates:
        return sorted(dates)[-1]
    return today_s


def apply_scope(plans: pd.DataFrame, scope: Mapping[str, str]) -> pd.DataFrame:
    out = plans
    for key, value in scope.items():
        if not value or key not in out.columns:
            continue
        out = out[out[key].astype(str).str.strip() == str(value).strip()]
    return out


def apply_selection(plans: pd.DataFrame, selection: Mapping[str, List[str]], *, skip: Optional[str] = None) -> pd.DataFrame:
    out = plans
    for key, values in selection.items():
        if key == skip or not values or key not in out.columns:
            continue
        out = out[out[key].astype(str).isin(set(values))]
    return out


def options_for(plans: pd.DataFrame, attribute: str, selection: Mapping[str, List[str]], scope: Mapping[str, str]) -> List[str]:
    """Distinct values of ``attribute`` under the scope and every other active filter."""
    if plans.empty or attribute not in plans.columns:
        return []
    base = apply_selection(apply_scope(plans, scope), selection, skip=attribute)
    values = base[attribute].dropna().astype(str).str.strip()
    return sorted(v for v in values.unique().tolist() if v)


def normalize_filters(
    raw: Mapping[str, object],
    *,
    available_dates: Optional[List[str]] = None,
    scope: Optional[Mapping[str, str]] = None,
    today: Optional[date] = None,
) -> DashboardFilters:
    scope = {k: str(v) for k, v in (scope if scope is not None else (raw.get("scope") or {})).items() if v}  # type: ignore[union-attr]

    raw_sel = raw.get("selection") or {}
    selection = pinned_selection(scope)
    for key, values in raw_sel.items():  # type: ignore[union-attr]
        if key in scope or key not in FILTER_KEYS:
            continue
        selection[key] = _as_str_list(values)  # type: ignore[arg-type]

    selected_date = parse_day(raw.get("selected_date")) or initial_date(available_dates or [], today)

    debt_metric = str(raw.get("debt_metric") or "all").lower()
    if debt_metric not in DEBT_METRICS:
        debt_metric = "all"

    top_n = raw.get("top_n", 5)
    try:
        top_n = int(top_n)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        top_n = 5
    top_n = max(1, min(50, top_n))

    depth = current_depth(selection)
    allowed = {lvl.key for lvl in available_levels(depth)}
    breakdown_key = raw.get("breakdown_key") or None
    debt_key = raw.get("debt_key") or None

    return DashboardFilters(
        selection=selection,
        scope=scope,
        selected_date=selected_date,
        daily_kpi=normalize_metric(raw.get("daily_kpi")),
        channel_kpi=normalize_metric(raw.get("channel_kpi")),
        ranking_kpi=normalize_metric(raw.get("ranking_kpi")),
        breakdown_kpi=normalize_metric(raw.get("breakdown_kpi")),
        breakdown_key=breakdown_key if breakdown_key in allowed else None,
        debt_key=debt_key if debt_key in allowed else None,
        debt_metric=debt_metric,
        top_n=top_n,
    )


class FilterState:
    """Multi-select filter selections for one session.

    Dimensions fixed by the session's access scope are pinned to the scope value
    and cannot be edited; everything else starts empty, meaning "all".
    """

    def __init__(self, plans: pd.DataFrame, scope: Optional[Mapping[str, str]] = None, dates: Optional[List[str]] = None, *, today: Optional[date] = None):
        self.plans = plans
        self.scope: Dict[str, str] = {k: str(v) for k, v in (scope or {}).items() if v}
        self.dates = sorted(dates or [])
        self._today = today
        self.selection: Dict[str, List[str]] = pinned_selection(self.scope)
        self.selected_date = initial_date(self.dates, today)
        self.kpis: Dict[str, str] = {"daily_kpi": "GSV", "channel_kpi": "GSV", "ranking_kpi": "GSV", "breakdown_kpi": "GSV"}

    @property
    def editable_keys(self) -> List[str]:
        return [k for k in FILTER_KEYS if k not in self.scope]

    @property
    def depth(self) -> int:
        return current_depth(self.selection)

    @property
    def view(self) -> ViewTier:
        return ViewTier.from_scope(self.scope)

    def set_filter(self, attribute: str, values: Iterable[object]) -> None:
        if attribute not in FILTER_KEYS:
            raise ValueError(f"Unknown filter attribute {attribute!r}")
        if attribute in self.scope:
            raise PermissionError(f"{attribute!r} is fixed by the session scope")
        self.selection[attribute] = _as_str_list(values)

    def set_kpi(self, card: str, metric: str) -> None:
        if card not in self.kpis:
            raise ValueError(f"Unknown KPI card {card!r}")
        if metric not in METRICS:
            raise ValueError(f"Unknown metric {metric!r}")
        self.kpis[card] = metric

    def set_date(self, day: object) -> None:
        parsed = parse_day(day)
        if parsed is None:
            raise ValueError(f"Invalid date {day!r}")
        self.selected_date = parsed

    def clear_all(self) -> None:
        self.selection = pinned_selection(self.scope)
        self.selected_date = self.dates[-1] if self.dates else (self._today or date.today()).isoformat()

    def options_for(self, attribute: str) -> List[str]:
        return options_for(self.plans, attribute, self.selection, self.scope)

    def apply(self, plans: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        base = self.plans if plans is None else plans
        return apply_selection(apply_scope(base, self.scope), self.selection)

    def snapshot(self, **overrides: object) -> DashboardFilters:
        snap = DashboardFilters(
            selection={k: list(v) for k, v in self.selection.items()},
            scope=dict(self.scope),
            selected_date=self.selected_date,
            **self.kpis,  # type: ignore[arg-type]
        )
        return replace(snap, **overrides) if overrides else snap

    @property
    def breakdown_visible(self) -> bool:
        return self.depth < MAX_DEPTH and bool(available_levels(self.depth))


def compute_options(filters: DashboardFilters, plans: pd.DataFrame) -> Dict[str, List[str]]:
    """Selectable values per filter dimension; pinned dimensions only offer their scope value."""
    out: Dict[str, List[str]] = {}
    for key in FILTER_KEYS:
        if key in filters.scope:
            out[key] = [filters.scope[key]]
        else:
            out[key] = options_for(plans, key, filters.selection, filters.scope)
    return out
