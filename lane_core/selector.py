# lane_core/selector.py
from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence

from .catalog import LANE_IDS, StatementCatalog
from .config import (
    EXPLORE_PROBABILITY,
    MIN_LANE_COVERAGE,
    TOP_LANES_FOR_FOCUS,
    DEBUG_SEED,
)
from .types import RunState, Statement

log = logging.getLogger(__name__)


def _ranked_lanes(ratings: Dict[str, float]) -> List[str]:
    # stable sort keeps lane order for ties
    lanes = [lane for lane in LANE_IDS if lane in ratings]
    return sorted(lanes, key=lambda lane: -float(ratings[lane]))


class StatementSelector:
    """Picks the next statement from what the run has seen so far.

    Steps run in priority order (coverage, exploration, uncertainty focus)
    and each falls through to the next when it has no unseen candidates.  The
    last resort is a uniform pick over everything unseen, so ``None`` means the
    catalog is exhausted.
    """

    def __init__(self, catalog: StatementCatalog, rng: Optional[random.Random] = None):
        self.catalog = catalog
        if rng is None:
            seed = DEBUG_SEED
            if seed is None:
                seed = random.randint(0, 2**31 - 1)
            rng = random.Random(int(seed))
        self.rng = rng
        self.last_reason: Optional[str] = None

    def _unseen(self, state: RunState) -> List[Statement]:
        seen = set(state.seen_statement_ids)
        return [st for st in self.catalog if st.id not in seen]

    def _pick(self, candidates: Sequence[Statement], reason: str) -> Statement:
        choice = self.rng.choice(list(candidates))
        self.last_reason = reason
        log.debug("selector %s -> %s (%d candidates)", reason, choice.id, len(candidates))
        return choice

    def _coverage_candidates(self, state: RunState, unseen: List[Statement]) -> List[Statement]:
        counts = {lane: int(state.lane_counts_shown.get(lane, 0)) for lane in LANE_IDS}
        under = {lane: n for lane, n in counts.items() if n < MIN_LANE_COVERAGE}
        if not under:
            return []
        lowest = min(under.values())
        target = {lane for lane, n in under.items() if n == lowest}
        return [st for st in unseen if st.lane_id in target]

    def _exploration_candidates(self, state: RunState, unseen: List[Statement]) -> List[Statement]:
        top = set(_ranked_lanes(state.lane_ratings)[:TOP_LANES_FOR_FOCUS])
        return [st for st in unseen if st.lane_id not in top]

    def _focus_candidates(self, state: RunState, unseen: List[Statement]) -> List[Statement]:
        ranked = _ranked_lanes(state.lane_ratings)[:TOP_LANES_FOR_FOCUS]
        if not ranked:
            return []
        top_rating = float(state.lane_ratings[ranked[0]])
        gaps = {lane: abs(top_rating - float(state.lane_ratings[lane])) for lane in ranked}
        min_gap = min(gaps.values())
        target = {lane for lane, gap in gaps.items() if gap == min_gap}
        return [st for st in unseen if st.lane_id in target]

    def next_statement(self, state: RunState) -> Optional[Statement]:
        unseen = self._unseen(state)
        if not unseen:
            self.last_reason = "exhausted"
            return None

        candidates = self._coverage_candidates(state, unseen)
        if candidates:
            return self._pick(candidates, "coverage")

        if self.rng.random() < EXPLORE_PROBABILITY:
            candidates = self._exploration_candidates(state, unseen)
            if candidates:
                return self._pick(candidates, "explore")

        candidates = self._focus_candidates(state, unseen)
        if candidates:
            return self._pick(candidates, "focus")

        return self._pick(unseen, "fallback")


def get_next_statement(
    statements: Iterable[Statement] | StatementCatalog,
    state: RunState,
    rng: Optional[random.Random] = None,
) -> Optional[Statement]:
    catalog = statements if isinstance(statements, StatementCatalog) else StatementCatalog(statements)
    return StatementSelector(catalog, rng).next_statement(state)
