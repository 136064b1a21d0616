from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from . import config
from .catalog import LANE_IDS
from .elo import expected_score
from .types import AnswerCounts, Convergence, RunState


def top_lanes(ratings: Dict[str, float], n: int = 2) -> List[Tuple[str, float]]:
    order = [lane for lane in LANE_IDS if lane in ratings]
    order += sorted(lane for lane in ratings if lane not in LANE_IDS)
    ranked = sorted(order, key=lambda lane: -float(ratings[lane]))
    return [(lane, float(ratings[lane])) for lane in ranked[:n]]


def rating_gap(ratings: Dict[str, float]) -> float:
    top = top_lanes(ratings, 2)
    if len(top) < 2:
        return 0.0
    return top[0][1] - top[1][1]


def skip_rate(counts: AnswerCounts) -> float:
    total = counts.total
    if total <= 0:
        return 0.0
    return counts.skip / total


def can_finish_early(state: RunState) -> bool:
    if state.round < config.MIN_SWIPES:
        return False
    if state.answer_counts.total < config.MIN_SWIPES:
        return False
    if skip_rate(state.answer_counts) > config.MAX_SKIP_RATE_FOR_STRONG:
        return False
    return rating_gap(state.lane_ratings) >= config.FINISH_GAP


def confidence_label(gap: float, skip: float) -> str:
    if gap >= config.STRONG_GAP and skip <= config.MAX_SKIP_RATE_FOR_STRONG:
        return "Strong"
    if skip > config.EXPLORATORY_SKIP_RATE:
        return "Exploratory"
    if gap < config.MEDIUM_GAP:
        return "Weak"
    return "Medium"


def summarize(state: RunState) -> Convergence:
    """Snapshot of how settled the run is; nothing here is persisted."""

    top = top_lanes(state.lane_ratings, 2)
    top_id: Optional[str] = top[0][0] if top else None
    runner_id: Optional[str] = top[1][0] if len(top) > 1 else None
    gap = rating_gap(state.lane_ratings)
    skip = skip_rate(state.answer_counts)
    if len(top) > 1:
        pct = int(round(100.0 * expected_score(top[0][1], top[1][1])))
    else:
        pct = 50
    return Convergence(
        top_lane_id=top_id,
        runner_up_lane_id=runner_id,
        rating_gap=gap,
        skip_rate=skip,
        confidence_pct=pct,
        label=confidence_label(gap, skip),  # type: ignore[arg-type]
        can_finish_early=can_finish_early(state),
    )
