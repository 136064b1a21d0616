from __future__ import annotations

from lane_core.heal import heal_run_state
from lane_core.schemas import validate_run_state
from lane_core.state import fresh_run_state


def _base(**overrides):
    data = fresh_run_state().to_dict()
    data.update(overrides)
    return data


def _entry(sid, lane, answer="yes"):
    return {"statement_id": sid, "lane_id": lane, "answer": answer, "timestamp": "2025-01-01T00:00:00Z"}


def test_invalid_current_replaced_with_first_unseen(catalog):
    data = _base(
        history=[_entry("partnerships_s0", "partnerships")],
        current_statement_id="no-such-statement",
        presented_statement_ids=["partnerships_s0", "no-such-statement"],
        seen_statement_ids=["partnerships_s0"],
        lane_counts_shown={"partnerships": 1},
        answer_counts={"yes": 1, "no": 0, "skip": 0},
        round=2,
    )
    res = heal_run_state(data, catalog)

    assert res.healed
    assert res.state["current_statement_id"] == "partnerships_s1"
    assert res.state["presented_statement_ids"] == ["partnerships_s0", "partnerships_s1"]
    state, errors = validate_run_state(res.state, catalog)
    assert errors == []


def test_invalid_current_cleared_when_catalog_exhausted(catalog):
    ids = [st.id for st in catalog][:32]
    history = [_entry(sid, catalog.lane_of(sid), "skip") for sid in ids]
    data = _base(history=history, current_statement_id="ghost", presented_statement_ids=ids + ["ghost"], round=33)
    res = heal_run_state(data, catalog)
    assert res.state["current_statement_id"] is None
    assert res.state["presented_statement_ids"] == ids
    assert any("no unseen statements" in n for n in res.notes)


def test_missing_lanes_rebuilt_by_replay(catalog):
    data = _base(
        history=[_entry("growth_s0", "growth"), _entry("growth_s1", "growth", "no")],
        lane_ratings={"growth": 1500},
        presented_statement_ids=["growth_s0", "growth_s1", "nil_s0"],
        current_statement_id="nil_s0",
        round=3,
    )
    res = heal_run_state(data, catalog)
    ratings = res.state["lane_ratings"]
    assert sorted(ratings) == sorted(catalog_lanes(catalog))
    assert ratings["growth"] != 1500
    assert ratings["nil"] == 1000
    assert res.state["seen_statement_ids"] == ["growth_s0", "growth_s1"]
    assert res.state["answer_counts"] == {"yes": 1, "no": 1, "skip": 0}


def test_duplicates_and_stale_current_fixed(catalog):
    data = _base(
        history=[_entry("content_s0", "content")],
        presented_statement_ids=["content_s0", "content_s0", "talent_s1"],
        current_statement_id="content_s0",
        seen_statement_ids=["content_s0", "bogus"],
        lane_counts_shown={"content": 1},
        answer_counts={"yes": 1, "no": 0, "skip": 0},
        round=2,
    )
    res = heal_run_state(data, catalog)
    assert res.state["presented_statement_ids"] == ["content_s0", "talent_s1"]
    assert res.state["current_statement_id"] == "talent_s1"
    assert res.state["seen_statement_ids"] == ["content_s0"]
    assert any("bogus" in n for n in res.notes)
    _, errors = validate_run_state(res.state, catalog)
    assert errors == []


def test_round_clamped_and_pending_cleared(catalog):
    data = _base(round=99, current_statement_id="nil_s0", presented_statement_ids=["nil_s0"])
    res = heal_run_state(data, catalog)
    assert res.state["round"] == data["max_rounds"] + 1
    assert res.state["current_statement_id"] is None
    assert res.state["presented_statement_ids"] == []


def test_heal_is_idempotent(catalog):
    data = _base(current_statement_id="ghost", presented_statement_ids=["ghost", "ghost"])
    once = heal_run_state(data, catalog)
    twice = heal_run_state(once.state, catalog)
    assert twice.state == once.state
    assert twice.healed is False


def catalog_lanes(catalog):
    return {st.lane_id for st in catalog}
