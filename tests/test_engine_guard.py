from __future__ import annotations

import json
import random

from lane_core.engine import RunSession
from lane_core.metrics import MetricsBuffer
from lane_core.persistence import MemoryPersistence
from lane_core.types import Active, Finished
from tests.conftest import FakeClock


def _session(catalog, clock=None, settle_sec=0.35, **kw):
    return RunSession(
        catalog,
        kw.pop("persistence", MemoryPersistence()),
        kw.pop("analytics", None),
        random.Random(9),
        clock=clock or FakeClock(),
        settle_sec=settle_sec,
        **kw,
    )


def test_second_commit_inside_settle_window_is_dropped(catalog):
    clock = FakeClock()
    sess = _session(catalog, clock)

    first = sess.commit_answer("yes")
    second = sess.commit_answer("no")

    assert first.accepted
    assert not second.accepted
    assert second.reason == "settling"
    assert len(sess.state.history) == 1
    assert sess.state.round == 2


def test_commit_accepted_after_settle(catalog):
    clock = FakeClock()
    sess = _session(catalog, clock)
    sess.commit_answer("yes")

    sess.settle()
    assert sess.commit_answer("no").accepted

    clock.advance(0.5)
    assert sess.commit_answer("skip").accepted
    assert len(sess.state.history) == 3


def test_undo_also_waits_for_settle(catalog):
    clock = FakeClock()
    sess = _session(catalog, clock)
    sess.commit_answer("yes")
    assert sess.undo() is False
    clock.advance(1)
    assert sess.undo() is True
    assert sess.state.history == []
    assert sess.state.round == 1


def test_finished_run_rejects_commits(catalog):
    sess = _session(catalog, settle_sec=0, stop_on_convergence=False)
    while isinstance(sess.phase, Active):
        assert sess.commit_answer("skip").accepted
    assert sess.phase == Finished("max_rounds")
    res = sess.commit_answer("yes")
    assert not res.accepted
    assert res.reason == "finished"


def test_every_commit_is_persisted(catalog):
    store = MemoryPersistence()
    sess = _session(catalog, settle_sec=0, persistence=store)
    sess.commit_answer("yes")
    sess.commit_answer("no")
    saved = json.loads(store.data)
    assert [h["answer"] for h in saved["history"]] == ["yes", "no"]
    assert saved["current_statement_id"] == sess.state.current_statement_id


def test_analytics_events_and_failing_sink(catalog):
    buf = MetricsBuffer()
    sess = _session(catalog, settle_sec=0, analytics=buf)
    sess.commit_answer("yes")
    sess.undo()
    sess.reset()
    names = [e["event"] for e in buf.events()]
    assert names == ["answer_committed", "answer_undone", "run_reset"]

    class Broken:
        def record(self, name, props):
            raise RuntimeError("sink down")

    flaky = _session(catalog, settle_sec=0, analytics=Broken())
    assert flaky.commit_answer("yes").accepted


def test_reset_clears_both_locations(catalog):
    store = MemoryPersistence(legacy=b"{}")
    sess = _session(catalog, settle_sec=0, persistence=store)
    sess.commit_answer("yes")
    sess.reset()
    assert store.legacy is None
    assert json.loads(store.data)["history"] == []
    assert isinstance(sess.phase, Active)


def test_state_property_is_a_copy(catalog):
    sess = _session(catalog, settle_sec=0)
    snap = sess.state
    snap.lane_ratings["growth"] = 5
    assert sess.state.lane_ratings["growth"] == 1000
