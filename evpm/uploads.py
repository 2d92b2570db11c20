from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Any, Dict, List, Literal, Union

import numpy as np
import pandas as pd

from evpm.backend import ScriptBackend
from evpm.session import SessionUser

logger = logging.getLogger(__name__)

UploadKind = Literal["plan", "achieved", "users"]
UPLOAD_KINDS = ("plan", "achieved", "users")


def read_sheet(source: Union[str, Path, IO[bytes]], filename: str = "") -> List[Dict[str, Any]]:
    """First worksheet of an .xlsx (or a .csv) as JSON-safe row dicts."""
    name = (filename or getattr(source, "name", "") or str(source)).lower()
    if name.endswith(".csv"):
        df = pd.read_csv(source)
    else:
        df = pd.read_excel(source, sheet_name=0, engine="openpyxl")
    df = df.dropna(how="all")
    for col in df.columns:
        if pd.api.types.is_datetime64_any_dtype(df[col]):
            df[col] = df[col].dt.strftime("%Y-%m-%d")
    df = df.replace({np.nan: None})
    return df.to_dict(orient="records")


def format_user_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    users = []
    for u in rows:
        username = u.get("Username") or u.get("username")
        if not username:
            continue
        users.append(
            {
                "username": str(username),
                "password": str(u.get("Password") or u.get("password") or ""),
                "name": str(u.get("Name") or u.get("name") or username),
                "jobTitle": "Staff",
                "role": "admin" if (u.get("Role") or u.get("role")) == "admin" else "user",
            }
        )
    return users


def upload(backend: ScriptBackend, user: SessionUser, kind: UploadKind, rows: List[Dict[str, Any]], *, day: str = "") -> Dict[str, Any]:
    if kind == "plan":
        result = backend.upload_plan(user, rows)
    elif kind == "achieved":
        if not day:
            raise ValueError("An achievement upload needs a date")
        result = backend.upload_achieved(user, rows, day)
    elif kind == "users":
        result = backend.update_users(user, format_user_rows(rows))
    else:
        raise ValueError(f"Unknown upload kind {kind!r}")
    logger.info("Uploaded %d %s rows", len(rows), kind)
    return result
