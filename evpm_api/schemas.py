from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Metric = Literal["GSV", "ECO", "PC", "LPC", "MVS"]


class DashboardFiltersModel(BaseModel):
    selection: Dict[str, List[str]] = Field(default_factory=dict)
    selected_date: Optional[str] = None
    daily_kpi: Metric = "GSV"
    channel_kpi: Metric = "GSV"
    ranking_kpi: Metric = "GSV"
    breakdown_kpi: Metric = "GSV"
    breakdown_key: Optional[str] = None
    debt_key: Optional[str] = None
    debt_metric: Literal["all", "due", "overdue"] = "all"
    top_n: int = Field(default=5, ge=1, le=50)


class MetaDatesResponse(BaseModel):
    dates: List[str]
    latest: Optional[str] = None


class MetaOptionsResponse(BaseModel):
    attribute: str
    values: List[str]
