from __future__ import annotations

import random

from lane_core import selector as selector_mod
from lane_core.catalog import LANE_IDS
from lane_core.selector import StatementSelector, get_next_statement
from lane_core.state import fresh_run_state, rebuild_derived_fields
from lane_core.types import HistoryEntry
from tests.conftest import build_synthetic_catalog


def _state_with_history(catalog, ids, answer="yes"):
    state = fresh_run_state()
    for sid in ids:
        state.history.append(
            HistoryEntry(statement_id=sid, lane_id=catalog.lane_of(sid), answer=answer, timestamp="t")
        )
    state.round = len(ids) + 1
    return rebuild_derived_fields(state)


def test_exhausted_catalog_returns_none(catalog):
    state = _state_with_history(catalog, [st.id for st in catalog])
    assert get_next_statement(catalog, state, random.Random(1)) is None


def test_never_returns_seen_statement(catalog):
    seen = [st.id for st in catalog][:-1]
    state = _state_with_history(catalog, seen)
    for seed in range(20):
        nxt = get_next_statement(catalog, state, random.Random(seed))
        assert nxt is not None
        assert nxt.id not in seen


def test_coverage_prefers_uncovered_lane(catalog):
    covered = [lane for lane in LANE_IDS if lane != "growth"]
    ids = [f"{lane}_s{i}" for lane in covered for i in range(2)]
    state = _state_with_history(catalog, ids)
    assert state.lane_counts_shown.get("growth", 0) == 0
    for seed in range(25):
        nxt = get_next_statement(catalog, state, random.Random(seed))
        assert nxt.lane_id == "growth"


def test_coverage_targets_lowest_count_first(catalog):
    ids = [f"{lane}_s0" for lane in LANE_IDS if lane != "nil"]
    state = _state_with_history(catalog, ids)
    sel = StatementSelector(catalog, random.Random(3))
    nxt = sel.next_statement(state)
    assert nxt.lane_id == "nil"
    assert sel.last_reason == "coverage"


def test_focus_picks_top_lane_when_exploration_off(catalog, monkeypatch):
    monkeypatch.setattr(selector_mod, "EXPLORE_PROBABILITY", 0.0)
    ids = [f"{lane}_s{i}" for lane in LANE_IDS for i in range(2)]
    state = _state_with_history(catalog, ids, answer="skip")
    state.lane_ratings["product"] = 1100
    state.lane_ratings["content"] = 1050
    sel = StatementSelector(catalog, random.Random(11))
    nxt = sel.next_statement(state)
    assert sel.last_reason == "focus"
    assert nxt.lane_id == "product"


def test_exploration_avoids_top_three(catalog, monkeypatch):
    monkeypatch.setattr(selector_mod, "EXPLORE_PROBABILITY", 1.0)
    ids = [f"{lane}_s{i}" for lane in LANE_IDS for i in range(2)]
    state = _state_with_history(catalog, ids, answer="skip")
    state.lane_ratings.update({"product": 1100, "content": 1060, "talent": 1030})
    sel = StatementSelector(catalog, random.Random(5))
    for _ in range(10):
        nxt = sel.next_statement(state)
        assert nxt.lane_id not in {"product", "content", "talent"}
        assert sel.last_reason == "explore"


def test_fallback_when_focus_lanes_exhausted(monkeypatch):
    monkeypatch.setattr(selector_mod, "EXPLORE_PROBABILITY", 0.0)
    catalog = build_synthetic_catalog(per_lane=3)
    ids = [f"{lane}_s{i}" for lane in LANE_IDS for i in range(2)] + ["product_s2"]
    state = _state_with_history(catalog, ids, answer="skip")
    state.lane_ratings["product"] = 1200
    sel = StatementSelector(catalog, random.Random(2))
    nxt = sel.next_statement(state)
    assert sel.last_reason == "fallback"
    assert nxt.lane_id != "product"
    assert nxt.id.endswith("_s2")


def test_same_seed_same_pick(catalog):
    state = fresh_run_state()
    a = get_next_statement(catalog, state, random.Random(42))
    b = get_next_statement(catalog, state, random.Random(42))
    assert a.id == b.id
