from __future__ import annotations

from typing import Dict, List, Literal, Tuple

Metric = Literal["GSV", "ECO", "PC", "LPC", "MVS"]
DebtMetric = Literal["all", "due", "overdue"]

METRICS: Tuple[str, ...] = ("GSV", "ECO", "PC", "LPC", "MVS")
DEBT_COLUMNS: Tuple[str, ...] = ("due", "overdue", "total_debt")

HIERARCHY_KEYS: Tuple[str, ...] = (
    "region",
    "regional_manager",
    "sales_manager",
    "distributor",
    "team_leader",
    "rep_name",
)
FILTER_KEYS: Tuple[str, ...] = HIERARCHY_KEYS + ("channel",)

FILTER_LABELS: Dict[str, str] = {
    "region": "Region",
    "regional_manager": "RSM",
    "sales_manager": "SM",
    "distributor": "Distributor",
    "team_leader": "Team Leader",
    "rep_name": "Salesman",
    "channel": "Channel",
    "rep_id": "Salesman Code",
}

UNKNOWN_LABEL = "Unknown"

# Raw spreadsheet / backend headers -> canonical columns.
PLAN_COLUMNS: Dict[str, str] = {
    "SALESMANNO": "rep_id",
    "SALESMANNAMEA": "rep_name",
    "Plan GSV": "plan_gsv",
    "Plan ECO": "plan_eco",
    "Plan PC": "plan_pc",
    "Plan LPC": "plan_lpc",
    "Plan MVS": "plan_mvs",
    "Dist Name": "distributor",
    "T.L Name": "team_leader",
    "Channel": "channel",
    "SM": "sales_manager",
    "RSM": "regional_manager",
    "Region": "region",
    "Due": "due",
    "Overdue": "overdue",
    "Total Debt": "total_debt",
}

ACHIEVED_COLUMNS: Dict[str, str] = {
    "SALESMANNO": "rep_id",
    "SALESMANNAMEA": "rep_name",
    "Ach GSV": "ach_gsv",
    "Ach ECO": "ach_eco",
    "Ach PC": "ach_pc",
    "Ach LPC": "ach_lpc",
    "Ach MVS": "ach_mvs",
    "Days": "date",
}

PLAN_STRING_COLUMNS: List[str] = ["rep_id", "rep_name", "distributor", "team_leader", "channel", "sales_manager", "regional_manager", "region"]
PLAN_NUMERIC_COLUMNS: List[str] = [f"plan_{m.lower()}" for m in METRICS] + list(DEBT_COLUMNS)
ACHIEVED_STRING_COLUMNS: List[str] = ["rep_id", "rep_name", "date"]
ACHIEVED_NUMERIC_COLUMNS: List[str] = [f"ach_{m.lower()}" for m in METRICS]


def plan_col(metric: str) -> str:
    return f"plan_{metric.lower()}"


def ach_col(metric: str) -> str:
    return f"ach_{metric.lower()}"


def normalize_metric(value: object, default: str = "GSV") -> str:
    s = str(value or "").strip().upper()
    return s if s in METRICS else default
