"""Login roles and the access scope each one maps to.

Authentication itself happens on the backend; this module only decides which
hierarchy attribute a signed-in identity is pinned to and how its name is shown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

import pandas as pd

from evpm.constants import PLAN_COLUMNS

logger = logging.getLogger(__name__)

REPRESENTATIVE_TITLE = "Sales Representative"


class Role(str, Enum):
    REPRESENTATIVE = "SALESMANNAMEA"
    TEAM_LEADER = "T.L Name"
    DISTRIBUTOR = "ASM"
    SALES_MANAGER = "SM"
    REGIONAL_MANAGER = "RSM"
    REGION = "Region"
    DIRECTOR = "Director"
    ADMIN = "Admin"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]


ROLE_LABELS: Dict[Role, str] = {
    Role.DIRECTOR: "Director",
    Role.REGION: "Region",
    Role.REGIONAL_MANAGER: "RSM (Regional Manager)",
    Role.SALES_MANAGER: "SM (Sales Manager)",
    Role.DISTRIBUTOR: "ASM / Distributor",
    Role.TEAM_LEADER: "Team Leader",
    Role.REPRESENTATIVE: "Sales Representative",
    Role.ADMIN: "System Administrator",
}

# Backend metadata list holding the identities selectable for each role.
METADATA_LISTS: Dict[Role, str] = {
    Role.DISTRIBUTOR: "asmList",
    Role.TEAM_LEADER: "tlList",
    Role.DIRECTOR: "directorList",
    Role.REPRESENTATIVE: "salesmanList",
    Role.REGIONAL_MANAGER: "rsmList",
    Role.SALES_MANAGER: "smList",
    Role.REGION: "regionList",
}


@dataclass(frozen=True)
class ResolvedSession:
    role: Role
    scope: Dict[str, str]
    title: str


def parse_rep_identity(identity: str) -> str:
    """``"101 - Ahmed Ali"`` -> ``"101"``."""
    return identity.split(" - ")[0].strip()


def _rep_context(plans: Optional[pd.DataFrame], rep_id: str) -> Dict[str, str]:
    if plans is None or plans.empty or "rep_id" not in plans.columns:
        return {}
    me = plans[plans["rep_id"].astype(str).str.strip() == rep_id]
    if me.empty:
        logger.warning("Representative %s not found in plan snapshot", rep_id)
        return {}
    row = me.iloc[0]
    return {k: str(row[k]) for k in ("team_leader", "distributor") if k in row.index and str(row[k] or "").strip()}


def _resolve_representative(identity: str, plans: Optional[pd.DataFrame]) -> ResolvedSession:
    rep_id = parse_rep_identity(identity)
    scope = {"rep_id": rep_id}
    scope.update(_rep_context(plans, rep_id))
    return ResolvedSession(Role.REPRESENTATIVE, scope, REPRESENTATIVE_TITLE)


def _attribute_resolver(role: Role, attribute: str) -> Callable[[str, Optional[pd.DataFrame]], ResolvedSession]:
    def resolve(identity: str, plans: Optional[pd.DataFrame]) -> ResolvedSession:
        return ResolvedSession(role, {attribute: identity.strip()}, role.label)

    return resolve


def _resolve_admin(identity: str, plans: Optional[pd.DataFrame]) -> ResolvedSession:
    return ResolvedSession(Role.ADMIN, {}, Role.ADMIN.label)


_RESOLVERS: Dict[Role, Callable[[str, Optional[pd.DataFrame]], ResolvedSession]] = {
    Role.REPRESENTATIVE: _resolve_representative,
    Role.TEAM_LEADER: _attribute_resolver(Role.TEAM_LEADER, "team_leader"),
    Role.DISTRIBUTOR: _attribute_resolver(Role.DISTRIBUTOR, "distributor"),
    Role.SALES_MANAGER: _attribute_resolver(Role.SALES_MANAGER, "sales_manager"),
    Role.REGIONAL_MANAGER: _attribute_resolver(Role.REGIONAL_MANAGER, "regional_manager"),
    Role.REGION: _attribute_resolver(Role.REGION, "region"),
    Role.DIRECTOR: _attribute_resolver(Role.DIRECTOR, "region"),
    Role.ADMIN: _resolve_admin,
}

_missing = set(Role) - set(_RESOLVERS)
if _missing:
    raise RuntimeError(f"No scope resolver for roles: {sorted(r.name for r in _missing)}")


def resolve_scope(role: Role | str, identity: str, plans: Optional[pd.DataFrame] = None) -> ResolvedSession:
    role = Role(role)
    if role is not Role.ADMIN and not (identity or "").strip():
        raise ValueError(f"An identity is required for role {role.label}")
    return _RESOLVERS[role](identity or "", plans)


def login_username(role: Role | str, identity: str) -> str:
    role = Role(role)
    if role is Role.REPRESENTATIVE:
        return parse_rep_identity(identity)
    if role is Role.ADMIN:
        return "admin"
    return identity


def format_display_name(raw: Optional[str]) -> str:
    """Greeting name: drop a leading ``"<code> -"`` prefix and keep the first two words."""
    if not raw:
        return ""
    name = raw.partition("-")[2].strip() if "-" in raw else raw.strip()
    return " ".join(name.split()[:2])


@dataclass
class SessionUser:
    username: str
    role: str = "user"
    name: str = ""
    job_title: str = ""
    auth_token: Optional[str] = None
    scope: Dict[str, str] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        return format_display_name(self.name or self.username)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SessionUser":
        from evpm.data import normalize_rep_id  # evpm.data imports this module via evpm.store

        def _value(key: str, value: Any) -> str:
            return normalize_rep_id(value) if key == "rep_id" else str(value)

        raw_scope = payload.get("scope") or {}
        scope: Dict[str, str] = {}
        if isinstance(raw_scope, Mapping):
            if "key" in raw_scope:
                # Backend form: {"key": "Dist Name", "value": "..."}
                key = str(raw_scope.get("key") or "")
                key = PLAN_COLUMNS.get(key, key)
                if key and raw_scope.get("value"):
                    scope[key] = _value(key, raw_scope["value"])
            else:
                scope = {str(k): _value(str(k), v) for k, v in raw_scope.items() if v}
        return cls(
            username=str(payload.get("username") or ""),
            role="admin" if payload.get("role") == "admin" else "user",
            name=str(payload.get("name") or ""),
            job_title=str(payload.get("jobTitle") or payload.get("job_title") or ""),
            auth_token=payload.get("authToken") or payload.get("auth_token"),
            scope=scope,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "role": self.role,
            "name": self.name,
            "jobTitle": self.job_title,
            "authToken": self.auth_token,
            "scope": dict(self.scope),
        }


def scope_for_user(user: Optional[SessionUser]) -> Dict[str, str]:
    if user is None or user.is_admin:
        return {}
    return dict(user.scope)
