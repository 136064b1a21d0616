# lane_core/engine.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import logging, random, time

from .catalog import StatementCatalog, default_catalog
from .config import (
    load_config,
    make_rng,
    SETTLE_MS,
    EARLY_FINISH_ENABLED,
    DEBUG_TRACE,
    TRACE_FIELDS,
)
from .convergence import summarize
from .invariants import InvariantReport, validate_invariants
from .metrics import AnalyticsSink, safe_record
from .persistence import MemoryPersistence, PersistenceProvider
from .recovery import RecoveryResult, recover_run_state
from .selector import StatementSelector
from .state import fresh_run_state, serialize_state, utcnow_iso
from .transitions import (
    commit_answer as _commit,
    ensure_current_statement,
    run_phase,
    undo_last,
)
from .types import Convergence, RunPhase, RunState, Statement


log = logging.getLogger(__name__)


def _emit_trace(**values: object) -> None:
    if not DEBUG_TRACE:
        return
    ordered = []
    for key in TRACE_FIELDS:
        if key in values:
            ordered.append(f"{key}={values[key]}")
    if ordered:
        log.info("trace %s", " ".join(str(val) for val in ordered))


@dataclass
class CommitResult:
    accepted: bool
    reason: Optional[str] = None
    ended: bool = False
    next_statement: Optional[Statement] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "accepted": self.accepted,
            "reason": self.reason,
            "ended": self.ended,
            "next_statement_id": self.next_statement.id if self.next_statement else None,
        }


class RunSession:
    """Owns one run: its state, selector, persistence and the commit guard.

    The guard models the swipe animation.  After an accepted commit (or undo)
    the session is settling until ``settle()`` is called or ``settle_sec`` has
    elapsed on the injected monotonic clock; anything committed meanwhile is
    dropped, never queued.
    """

    def __init__(
        self,
        catalog: Optional[StatementCatalog] = None,
        persistence: Optional[PersistenceProvider] = None,
        analytics: Optional[AnalyticsSink] = None,
        rng: Optional[random.Random] = None,
        *,
        state: Optional[RunState] = None,
        clock: Callable[[], float] = time.monotonic,
        settle_sec: Optional[float] = None,
        stop_on_convergence: Optional[bool] = None,
        now: Callable[[], str] = utcnow_iso,
    ):
        self.cfg = load_config()
        self.catalog = catalog or default_catalog()
        self.persistence = persistence if persistence is not None else MemoryPersistence()
        self.analytics = analytics
        self.selector = StatementSelector(self.catalog, rng or make_rng(cfg=self.cfg))
        self._clock = clock
        self._now = now
        if settle_sec is None:
            settle_sec = float(self.cfg.get("SETTLE_MS", SETTLE_MS)) / 1000.0
        self.settle_sec = max(0.0, float(settle_sec))
        if stop_on_convergence is None:
            stop_on_convergence = bool(self.cfg.get("EARLY_FINISH_ENABLED", EARLY_FINISH_ENABLED))
        self.stop_on_convergence = stop_on_convergence
        self._settle_deadline: Optional[float] = None
        self.recovery: Optional[RecoveryResult] = None
        self._state = state if state is not None else fresh_run_state()
        if state is None:
            self._prime()
            self._save()

    # ---- construction -------------------------------------------------
    @classmethod
    def load(
        cls,
        persistence: PersistenceProvider,
        catalog: Optional[StatementCatalog] = None,
        analytics: Optional[AnalyticsSink] = None,
        rng: Optional[random.Random] = None,
        **kwargs: Any,
    ) -> "RunSession":
        """Recover persisted state, writing it through when it was repaired."""

        catalog = catalog or default_catalog()
        now = kwargs.get("now", utcnow_iso)
        raw = persistence.load()
        result = recover_run_state(raw, catalog, now=now())
        sess = cls(catalog, persistence, analytics, rng, state=result.state, **kwargs)
        sess.recovery = result
        primed = False
        if not result.state.history:
            primed = sess._prime()
        if result.repaired or primed or getattr(persistence, "loaded_from_legacy", False):
            sess._save()
        if result.stage != "valid":
            safe_record(analytics, "state_recovered", {
                "stage": result.stage,
                "notes": list(result.notes),
                "legacy": bool(getattr(persistence, "loaded_from_legacy", False)),
            })
        for note in result.notes:
            log.warning("recovered run state (%s): %s", result.stage, note)
        return sess

    # ---- read-only views ----------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state.copy()

    @property
    def phase(self) -> RunPhase:
        return run_phase(self._state, self.catalog)

    @property
    def current_statement(self) -> Optional[Statement]:
        return self.catalog.by_id(self._state.current_statement_id)

    @property
    def convergence(self) -> Convergence:
        return summarize(self._state)

    def invariants(self) -> InvariantReport:
        return validate_invariants(self._state, self.catalog)

    def results(self) -> Dict[str, object]:
        from .reporting import build_results
        return build_results(self._state, self.catalog)

    # ---- guard ----------------------------------------------------------
    @property
    def is_settling(self) -> bool:
        if self._settle_deadline is None:
            return False
        if self._clock() >= self._settle_deadline:
            self._settle_deadline = None
            return False
        return True

    def settle(self) -> None:
        self._settle_deadline = None

    def _start_settle(self) -> None:
        if self.settle_sec > 0:
            self._settle_deadline = self._clock() + self.settle_sec

    # ---- transitions ----------------------------------------------------
    def _prime(self) -> bool:
        self._state, changed = ensure_current_statement(self._state, self.catalog, self.selector)
        return changed

    def _save(self) -> None:
        self.persistence.save(serialize_state(self._state))

    def commit_answer(self, answer: str) -> CommitResult:
        if self.is_settling:
            log.debug("commit %r dropped while settling", answer)
            return CommitResult(accepted=False, reason="settling")

        round_before = self._state.round
        outcome = _commit(
            self._state,
            answer,
            self.catalog,
            self.selector,
            now=self._now(),
            stop_on_convergence=self.stop_on_convergence,
        )
        if not outcome.accepted:
            return CommitResult(accepted=False, reason=outcome.reason)

        self._state = outcome.state
        self._start_settle()
        self._save()

        entry = outcome.entry
        _emit_trace(
            round=round_before,
            statement_id=entry.statement_id if entry else None,
            lane_id=entry.lane_id if entry else None,
            answer=entry.answer if entry else None,
            rating_before=outcome.rating_before,
            rating_after=outcome.rating_after,
            next_statement_id=outcome.next_statement_id,
        )
        safe_record(self.analytics, "answer_committed", {
            "round": round_before,
            "statement_id": entry.statement_id if entry else None,
            "lane_id": entry.lane_id if entry else None,
            "answer": entry.answer if entry else None,
            "selector": self.selector.last_reason,
        })
        if outcome.ended:
            conv = summarize(self._state)
            log.info("run finished (%s) after %d answers", outcome.reason, len(self._state.history))
            safe_record(self.analytics, "run_finished", {
                "reason": outcome.reason,
                "answers": len(self._state.history),
                "top_lane_id": conv.top_lane_id,
                "label": conv.label,
            })
        return CommitResult(
            accepted=True,
            reason=outcome.reason,
            ended=outcome.ended,
            next_statement=self.catalog.by_id(outcome.next_statement_id),
        )

    def undo(self) -> bool:
        if self.is_settling:
            return False
        result = undo_last(self._state, self.catalog)
        if result.undone is None:
            return False
        self._state = result.state
        self._start_settle()
        self._save()
        safe_record(self.analytics, "answer_undone", {
            "statement_id": result.undone.statement_id,
            "round": self._state.round,
        })
        return True

    def reset(self) -> None:
        self.persistence.clear()
        self._state = fresh_run_state()
        self._settle_deadline = None
        self._prime()
        self._save()
        safe_record(self.analytics, "run_reset", {})


def _dev_check_run() -> None:
    from .metrics import MetricsBuffer

    buf = MetricsBuffer()
    sess = RunSession(analytics=buf, rng=random.Random(7), settle_sec=0)
    answers = ["yes", "no", "skip"]
    steps = 0
    while sess.current_statement is not None:
        sess.commit_answer(answers[steps % 3])
        steps += 1
    assert sess.invariants().ok, sess.invariants().errors
    assert sess.undo()
    assert sess.current_statement is not None
    print(f"answered {steps}, phase after undo: {sess.phase}")
    print(f"events: {len(buf.events())}, convergence: {sess.convergence.to_dict()}")


if __name__ == "__main__":  # pragma: no cover - developer utility
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    _dev_check_run()
