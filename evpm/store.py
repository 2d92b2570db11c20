"""File-backed application state (config, metadata, session user, data snapshot).

The store loads everything on construction and writes through on every change.
A failed write (quota, permissions, full disk) is logged and the in-memory
value is kept, so the app keeps running until the next successful save.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional
from urllib.parse import urlencode

from evpm.config import get_settings
from evpm.session import SessionUser

logger = logging.getLogger(__name__)

CONFIG_FILE = "evpm_config.json"
METADATA_FILE = "evpm_metadata.json"
USER_FILE = "evpm_user.json"
DATA_FILE = "evpm_data.json"

INVITE_PARAM = "syncUrl"


class AppStateStore:
    def __init__(self, state_dir: Optional[Path] = None):
        self.state_dir = Path(state_dir or get_settings().state_dir)
        self.config: Dict[str, Any] = self._read(CONFIG_FILE) or {"sync_url": get_settings().sync_url, "last_updated": ""}
        self.metadata: Optional[Dict[str, Any]] = self._read(METADATA_FILE)
        raw_user = self._read(USER_FILE)
        self.user: Optional[SessionUser] = SessionUser.from_payload(raw_user) if raw_user else None
        self.data: Dict[str, Any] = (self._read(DATA_FILE) or {"plans": [], "achievements": []}) if self.user else {"plans": [], "achievements": []}

    # ------------------------------------------------------------------ io
    def _path(self, name: str) -> Path:
        return self.state_dir / name

    def _read(self, name: str) -> Optional[Dict[str, Any]]:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable state file %s", path, exc_info=True)
            return None

    def _write(self, name: str, value: Optional[Mapping[str, Any]]) -> bool:
        path = self._path(name)
        try:
            if value is None:
                path.unlink(missing_ok=True)
                return True
            self.state_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(value, fh, ensure_ascii=False)
            tmp.replace(path)
            return True
        except OSError:
            logger.warning("Storage write failed for %s; continuing from memory", name, exc_info=True)
            return False

    # ------------------------------------------------------------- setters
    @property
    def sync_url(self) -> str:
        return str(self.config.get("sync_url") or "")

    @property
    def last_updated(self) -> str:
        return str(self.config.get("last_updated") or "")

    def set_sync_url(self, url: str) -> None:
        self.config = {**self.config, "sync_url": url.strip()}
        self._write(CONFIG_FILE, self.config)

    def reset_config(self, url: str) -> None:
        self.config = {"sync_url": url.strip(), "last_updated": ""}
        self._write(CONFIG_FILE, self.config)

    def mark_synced(self, when: Optional[datetime] = None) -> None:
        stamp = (when or datetime.now(timezone.utc)).isoformat()
        self.config = {**self.config, "last_updated": stamp}
        self._write(CONFIG_FILE, self.config)

    def set_metadata(self, metadata: Mapping[str, Any]) -> None:
        self.metadata = dict(metadata)
        self._write(METADATA_FILE, self.metadata)

    def set_user(self, user: Optional[SessionUser]) -> None:
        self.user = user
        self._write(USER_FILE, user.to_payload() if user else None)

    def set_data(self, payload: Mapping[str, Any]) -> bool:
        self.data = {"plans": list(payload.get("plans") or []), "achievements": list(payload.get("achievements") or [])}
        return self._write(DATA_FILE, self.data)

    def clear_session(self) -> None:
        """Logout: forget the user and the secured data snapshot."""
        self.user = None
        self.data = {"plans": [], "achievements": []}
        self._write(USER_FILE, None)
        self._write(DATA_FILE, None)


def consume_invite(params: MutableMapping[str, Any], store: AppStateStore) -> bool:
    """Store a ``syncUrl`` query parameter as the backend URL and remove it from ``params``."""
    raw = params.get(INVITE_PARAM)
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    if not raw or not str(raw).strip():
        return False
    store.reset_config(str(raw).strip())
    del params[INVITE_PARAM]
    logger.info("Backend URL configured from invite link")
    return True


def build_invite_link(base_url: str, sync_url: str) -> str:
    if not sync_url:
        raise ValueError("Save a backend URL before sharing an invite link")
    return f"{base_url.split('?')[0]}?{urlencode({INVITE_PARAM: sync_url})}"


def read_session_user(state_dir: Optional[Path] = None) -> Optional[SessionUser]:
    """The persisted session user without loading the data snapshot."""
    path = Path(state_dir or get_settings().state_dir) / USER_FILE
    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as fh:
            return SessionUser.from_payload(json.load(fh))
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable session file %s", path, exc_info=True)
        return None
