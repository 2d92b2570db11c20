from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from evpm.backend import BackendError, ScriptBackend, SessionExpiredError
from evpm.data import normalize_plans
from evpm.session import REPRESENTATIVE_TITLE, Role, SessionUser, login_username, resolve_scope
from evpm.store import AppStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    ok: bool = False
    skipped: bool = False
    error: Optional[str] = None
    cached: bool = True


class SyncCoordinator:
    """Login, metadata and data syncs against the backend, persisted through the store.

    Data syncs are serialized: a sync requested while another is in flight is
    dropped (logged, ``SyncResult(skipped=True)``) instead of overlapping.
    """

    def __init__(self, store: AppStateStore, backend_factory: Optional[Callable[[str], ScriptBackend]] = None):
        self.store = store
        self._backend_factory = backend_factory or (lambda url: ScriptBackend(url))
        self._lock = threading.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def _backend(self) -> ScriptBackend:
        return self._backend_factory(self.store.sync_url)

    def sync_metadata(self) -> bool:
        if not self.store.sync_url:
            return False
        try:
            with self._backend() as backend:
                metadata = backend.get_metadata()
        except BackendError as exc:
            logger.warning("Metadata sync failed: %s", exc)
            return False
        self.store.set_metadata(metadata)
        return True

    def login(self, role: Role | str, identity: str, password: str) -> SessionUser:
        """Authenticate against the backend; errors propagate for inline display."""
        role = Role(role)
        identity = "admin" if role is Role.ADMIN else identity
        if not identity:
            raise ValueError("Select a name / branch / code")
        with self._backend() as backend:
            user = backend.login(login_username(role, identity), password, role.value, identity)
        if not user.is_admin and not user.scope:
            plans, _ = normalize_plans(self.store.data.get("plans") or [])
            user.scope = resolve_scope(role, identity, plans).scope
        if role is Role.REPRESENTATIVE:
            user.job_title = REPRESENTATIVE_TITLE
        self.store.set_user(user)
        logger.info("Logged in %s as %s", user.username, role.name)
        return user

    def logout(self) -> None:
        self.store.clear_session()

    def sync_data(self) -> SyncResult:
        user = self.store.user
        if not self.store.sync_url or user is None or not user.auth_token:
            return SyncResult(ok=False, error="Not signed in or backend URL missing")

        if not self._lock.acquire(blocking=False):
            logger.info("Sync already in progress; ignoring new request")
            return SyncResult(skipped=True)
        try:
            with self._backend() as backend:
                payload = backend.get_data(user)
        except SessionExpiredError:
            logger.error("Session expired during sync; logging out")
            self.logout()
            raise
        except BackendError as exc:
            logger.exception("Secure sync failed")
            return SyncResult(ok=False, error=str(exc))
        finally:
            self._lock.release()

        merged = {
            "plans": payload["plans"] if payload.get("plans") is not None else self.store.data.get("plans", []),
            "achievements": payload["achievements"] if payload.get("achievements") is not None else self.store.data.get("achievements", []),
        }
        cached = self.store.set_data(merged)
        self.store.mark_synced()
        return SyncResult(ok=True, cached=cached)
