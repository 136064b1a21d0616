from __future__ import annotations

import json
import logging
import random

from .catalog import LANE_IDS, default_catalog
from .config import DEBUG_SEED, TRACE_FIELDS, DEBUG_TRACE
from .engine import RunSession
from .metrics import MetricsBuffer
from .persistence import MemoryPersistence
from .types import Statement


def _maybe_enable_trace() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    if DEBUG_TRACE:
        logging.getLogger("lane_core.engine").setLevel(logging.INFO)


def _auto_answer(statement: Statement, favourite: str) -> str:
    if statement.lane_id == favourite:
        return "yes"
    if statement.id.endswith("-3"):
        return "skip"
    return "no"


def _trace_fields() -> str:
    return ", ".join(TRACE_FIELDS)


def _check_corruption_recovery() -> None:
    cases = {
        "garbage": b"{not json",
        "legacy": json.dumps({
            "round": 3,
            "max_rounds": 30,
            "lane_ratings": {"partnerships": 1012, "content": 1000},
            "history": [
                {"statement_id": "stmt-partnerships-1", "lane_id": "partnerships",
                 "answer": "YES", "timestamp_iso": "2024-01-01T00:00:00Z"},
                {"card_id": "old-card", "picked": "left"},
            ],
            "current_statement_id": "stmt-content-2",
        }).encode("utf-8"),
        "bad_current": json.dumps({
            "round": 1, "max_rounds": 32, "lane_ratings": {lane: 1000 for lane in LANE_IDS},
            "history": [], "seen_statement_ids": [], "lane_counts_shown": {},
            "answer_counts": {"yes": 0, "no": 0, "skip": 0},
            "current_statement_id": "does-not-exist",
            "presented_statement_ids": ["does-not-exist"], "schema_version": 2,
        }).encode("utf-8"),
    }
    for name, raw in cases.items():
        sess = RunSession.load(MemoryPersistence(legacy=raw), rng=random.Random(1), settle_sec=0)
        report = sess.invariants()
        logging.info(
            "recovery %-11s stage=%-8s ok=%s notes=%d current=%s",
            name, sess.recovery.stage if sess.recovery else "?", report.ok,
            len(sess.recovery.notes) if sess.recovery else 0, sess.state.current_statement_id,
        )
        assert report.ok, report.errors


def run_smoke_session() -> None:
    _maybe_enable_trace()

    seed = DEBUG_SEED if DEBUG_SEED is not None else 1234
    favourite = random.Random(seed).choice(LANE_IDS)
    logging.info("Starting simulated run with seed=%s favourite=%s", seed, favourite)
    logging.info("Trace fields: %s", _trace_fields())

    buf = MetricsBuffer()
    store = MemoryPersistence()
    session = RunSession(default_catalog(), store, buf, random.Random(seed), settle_sec=0)

    while session.current_statement is not None:
        session.commit_answer(_auto_answer(session.current_statement, favourite))

    conv = session.convergence
    logging.info(
        "Run complete: phase=%s answers=%d top=%s gap=%.0f label=%s (%d%%)",
        session.phase, len(session.state.history), conv.top_lane_id,
        conv.rating_gap, conv.label, conv.confidence_pct,
    )
    report = session.invariants()
    logging.info("Invariants ok=%s warnings=%d", report.ok, len(report.warnings))

    if session.undo():
        logging.info("Undo restored %s at round %d", session.state.current_statement_id, session.state.round)

    reloaded = RunSession.load(store, rng=random.Random(seed), settle_sec=0)
    assert reloaded.state.to_dict() == session.state.to_dict()
    logging.info("Reload stage=%s", reloaded.recovery.stage if reloaded.recovery else "?")

    _check_corruption_recovery()
    logging.info("Analytics events buffered: %d", len(buf.events()))


if __name__ == "__main__":  # pragma: no cover
    run_smoke_session()
