from __future__ import annotations

import logging
import math
from typing import Dict, List

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from evpm.aggregation import debt_shares, group_by
from evpm.config import get_settings
from evpm.constants import FILTER_KEYS
from evpm.data import load_dashboard_data, prepare_context
from evpm.filters import DashboardFilters, compute_options, normalize_filters
from evpm.hierarchy import DrillDown
from evpm.log import setup_logging
from evpm.metrics_daily import compute_daily
from evpm.metrics_debt import compute_debt
from evpm.metrics_debug import compute_debug
from evpm.metrics_overview import compute_overview
from evpm.metrics_performance import compute_performance
from evpm.session import scope_for_user
from evpm.store import read_session_user
from evpm_api.schemas import DashboardFiltersModel, MetaDatesResponse, MetaOptionsResponse

settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(title=f"{settings.app_name} API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _session_scope() -> Dict[str, str]:
    return scope_for_user(read_session_user(get_settings().state_dir))


def _filters_from_model(model: DashboardFiltersModel, *, available_dates: List[str]) -> DashboardFilters:
    raw = model.model_dump()
    return normalize_filters(raw, available_dates=available_dates, scope=_session_scope())


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _page(filters: DashboardFiltersModel):
    data_ctx = load_dashboard_data(get_settings().state_dir)
    f = _filters_from_model(filters, available_dates=data_ctx.get("dates", []))
    return f, prepare_context(f, data_ctx)


@app.get("/meta/dates", response_model=MetaDatesResponse)
def meta_dates():
    try:
        data_ctx = load_dashboard_data(get_settings().state_dir)
        dates = [str(d) for d in data_ctx.get("dates", []) or []]
        return _json({"dates": dates, "latest": dates[-1] if dates else None})
    except Exception as exc:
        logger.exception("meta_dates failed")
        return _error(exc)


@app.get("/meta/options", response_model=MetaOptionsResponse)
def meta_options(attribute: str = Query(default="distributor")):
    try:
        if attribute not in FILTER_KEYS:
            return JSONResponse(status_code=400, content={"error": f"Unknown filter attribute {attribute!r}", "type": "ValueError"})
        data_ctx = load_dashboard_data(get_settings().state_dir)
        f = normalize_filters({}, available_dates=data_ctx.get("dates", []), scope=_session_scope())
        return _json({"attribute": attribute, "values": compute_options(f, data_ctx["plans"])[attribute]})
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc)


@app.post("/options")
def options(filters: DashboardFiltersModel):
    try:
        f, ctx = _page(filters)
        return _json({"filters": f, "options": compute_options(f, ctx["plans"])})
    except Exception as exc:
        logger.exception("options failed")
        return _error(exc)


@app.post("/overview")
def overview(filters: DashboardFiltersModel):
    try:
        f, ctx = _page(filters)
        return _json(compute_overview(f, ctx))
    except Exception as exc:
        logger.exception("overview failed")
        return _error(exc)


@app.post("/performance")
def performance(filters: DashboardFiltersModel):
    try:
        f, ctx = _page(filters)
        return _json(compute_performance(f, ctx))
    except Exception as exc:
        logger.exception("performance failed")
        return _error(exc)


@app.post("/debt")
def debt(filters: DashboardFiltersModel):
    try:
        f, ctx = _page(filters)
        return _json(compute_debt(f, ctx))
    except Exception as exc:
        logger.exception("debt failed")
        return _error(exc)


@app.post("/daily")
def daily(filters: DashboardFiltersModel):
    try:
        f, ctx = _page(filters)
        return _json(compute_daily(f, ctx))
    except Exception as exc:
        logger.exception("daily failed")
        return _error(exc)


@app.post("/debug")
def debug(filters: DashboardFiltersModel):
    try:
        f, ctx = _page(filters)
        return _json(compute_debug(f, ctx))
    except Exception as exc:
        logger.exception("debug failed")
        return _error(exc)


@app.post("/export/{page}")
def export_page(page: str, filters: DashboardFiltersModel):
    f, ctx = _page(filters)

    export_df = None
    filename = f"{page}.csv"
    if page == "overview":
        export_df = ctx.get("merged")
    elif page == "performance":
        drill = DrillDown.from_selection(f.selection, f.breakdown_key)
        export_df = group_by(ctx["merged"], drill.key, f.breakdown_kpi, shorten=False) if drill.breakdown_visible and drill.key else None
    elif page == "debt":
        drill = DrillDown.from_selection(f.selection, f.debt_key, terminal_empty=True)
        export_df = debt_shares(ctx["merged"], drill.key, f.debt_metric) if drill.key else None
    elif page == "daily":
        export_df = pd.DataFrame(compute_daily(f, ctx)["points"])
    else:
        export_df = pd.DataFrame()

    if export_df is None or not hasattr(export_df, "to_csv"):
        export_df = pd.DataFrame()
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
