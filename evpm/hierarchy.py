from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class HierarchyLevel:
    key: str
    label: str
    depth: int


LEVELS: Tuple[HierarchyLevel, ...] = (
    HierarchyLevel("region", "Region", 0),
    HierarchyLevel("regional_manager", "RSM", 1),
    HierarchyLevel("sales_manager", "SM", 2),
    HierarchyLevel("distributor", "Distributor", 3),
    HierarchyLevel("team_leader", "Team Leader", 4),
    HierarchyLevel("rep_name", "Salesman", 5),
)
MAX_DEPTH = LEVELS[-1].depth
LEVEL_BY_KEY = {lvl.key: lvl for lvl in LEVELS}


def _has_value(selection: Mapping[str, object], key: str) -> bool:
    vals = selection.get(key)
    if vals is None:
        return False
    if isinstance(vals, str):
        return bool(vals.strip())
    return any(str(v).strip() for v in vals)  # type: ignore[union-attr]


def current_depth(selection: Mapping[str, object]) -> int:
    """Deepest hierarchy level with an active value (0 when nothing is selected)."""
    if _has_value(selection, "rep_id"):
        return MAX_DEPTH
    for lvl in reversed(LEVELS):
        if _has_value(selection, lvl.key):
            return lvl.depth
    return 0


def available_levels(depth: int) -> Tuple[HierarchyLevel, ...]:
    return tuple(lvl for lvl in LEVELS if lvl.depth > depth)


def default_drill_key(depth: int, *, terminal_empty: bool = False) -> Optional[str]:
    nxt = depth + 1
    if nxt < len(LEVELS):
        return LEVELS[nxt].key
    return None if terminal_empty else LEVELS[-1].key


class DrillDown:
    """Which level a breakdown groups by, given the user's current depth.

    Only levels strictly below the current depth can be chosen. Choosing one
    never touches the filter selection; it only changes the grouping key.
    """

    def __init__(self, depth: int, key: Optional[str] = None, *, terminal_empty: bool = False):
        self.depth = max(0, min(int(depth), MAX_DEPTH))
        self.terminal_empty = terminal_empty
        self.key = default_drill_key(self.depth, terminal_empty=terminal_empty)
        if key:
            try:
                self.select(key)
            except ValueError:
                pass

    @classmethod
    def from_selection(cls, selection: Mapping[str, object], key: Optional[str] = None, *, terminal_empty: bool = False) -> "DrillDown":
        return cls(current_depth(selection), key, terminal_empty=terminal_empty)

    @property
    def options(self) -> Tuple[HierarchyLevel, ...]:
        return available_levels(self.depth)

    @property
    def option_keys(self) -> Sequence[str]:
        return [lvl.key for lvl in self.options]

    @property
    def breakdown_visible(self) -> bool:
        return self.depth < MAX_DEPTH and bool(self.options) and self.key is not None

    @property
    def label(self) -> str:
        lvl = LEVEL_BY_KEY.get(self.key or "")
        return lvl.label if lvl else "Level"

    @property
    def title(self) -> str:
        lvl = LEVEL_BY_KEY.get(self.key or "")
        return f"{lvl.label} Performance" if lvl else "Sales Performance"

    def select(self, key: str) -> str:
        if key not in self.option_keys:
            raise ValueError(f"Cannot drill into {key!r} from depth {self.depth}; available: {list(self.option_keys)}")
        self.key = key
        return key
