from __future__ import annotations

import pytest

from evpm.hierarchy import LEVELS, MAX_DEPTH, DrillDown, available_levels, current_depth, default_drill_key


def test_current_depth():
    assert current_depth({}) == 0
    assert current_depth({"region": ["North"]}) == 0
    assert current_depth({"region": ["North"], "distributor": ["Alpha Dist"]}) == 3
    assert current_depth({"team_leader": ["  "]}) == 0
    assert current_depth({"rep_id": ["101"]}) == MAX_DEPTH


def test_available_levels_shrink_monotonically():
    for depth in range(MAX_DEPTH):
        deeper = {lvl.key for lvl in available_levels(depth + 1)}
        here = {lvl.key for lvl in available_levels(depth)}
        assert deeper < here
    assert available_levels(MAX_DEPTH) == ()


def test_default_drill_key():
    assert default_drill_key(0) == "regional_manager"
    assert default_drill_key(3) == "team_leader"
    assert default_drill_key(MAX_DEPTH) == LEVELS[-1].key
    assert default_drill_key(MAX_DEPTH, terminal_empty=True) is None


def test_drilldown_select_only_deeper_levels():
    drill = DrillDown.from_selection({"distributor": ["Alpha Dist"]})
    assert drill.key == "team_leader"
    assert list(drill.option_keys) == ["team_leader", "rep_name"]
    assert drill.select("rep_name") == "rep_name"
    assert drill.title == "Salesman Performance"
    with pytest.raises(ValueError):
        drill.select("region")
    assert drill.key == "rep_name"


def test_drilldown_ignores_invalid_initial_key():
    assert DrillDown(4, "region").key == "rep_name"


def test_debt_drilldown_hidden_at_salesman_depth():
    drill = DrillDown(MAX_DEPTH, terminal_empty=True)
    assert drill.key is None
    assert drill.breakdown_visible is False
    assert DrillDown(2, terminal_empty=True).breakdown_visible is True
