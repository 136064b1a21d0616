"""Elo helpers used to move per-lane ratings.

Each YES/NO answer is treated as a single match between a lane and a fixed
baseline opponent.  A YES means the lane won, a NO means the baseline won and a
SKIP leaves the rating untouched.  Keeping the maths here lets the commit path,
undo replay and the audit export share exactly the same arithmetic.
"""
from __future__ import annotations

import math
from typing import NamedTuple, Optional

from .config import BASELINE_RATING, K_FACTOR

__all__ = [
    "EloUpdate",
    "expected_score",
    "update_elo",
    "rating_after_answer",
]

_LN10_OVER_400 = math.log(10.0) / 400.0


class EloUpdate(NamedTuple):
    winner: int
    loser: int


def _logistic(x: float) -> float:
    """Overflow-safe ``1 / (1 + e^{-x})``."""

    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def expected_score(r_a: float, r_b: float) -> float:
    """Expected score of ``a`` against ``b``.

    Parameters
    ----------
    r_a, r_b: float
        Ratings of the two sides.

    Returns
    -------
    float
        ``1 / (1 + 10^((r_b − r_a) / 400))``, strictly inside ``(0, 1)`` for
        any realistic rating gap.
    """

    return _logistic((float(r_a) - float(r_b)) * _LN10_OVER_400)


def update_elo(r_winner: float, r_loser: float, k: float = K_FACTOR) -> EloUpdate:
    """Apply one Elo match and return the rounded ratings.

    The winner always gains and the loser always drops at least one point even
    when rounding would otherwise swallow a tiny delta for a heavy favourite.
    """

    e_winner = expected_score(r_winner, r_loser)
    e_loser = 1.0 - e_winner
    new_winner = _round_half_up(r_winner + k * (1.0 - e_winner))
    new_loser = _round_half_up(r_loser + k * (0.0 - e_loser))
    if new_winner <= r_winner:
        new_winner = int(math.floor(r_winner)) + 1
    if new_loser >= r_loser:
        new_loser = int(math.ceil(r_loser)) - 1
    return EloUpdate(new_winner, new_loser)


def rating_after_answer(
    rating: float,
    answer: Optional[str],
    baseline: float = BASELINE_RATING,
) -> float:
    """Return the lane rating after ``answer`` has been applied."""

    if answer == "yes":
        return update_elo(rating, baseline).winner
    if answer == "no":
        return update_elo(baseline, rating).loser
    return rating


if __name__ == "__main__":  # pragma: no cover - developer utility
    assert abs(expected_score(1000, 1000) - 0.5) < 1e-9
    assert abs(expected_score(1200, 1000) + expected_score(1000, 1200) - 1.0) < 1e-9
    assert update_elo(1000, 1000) == (1012, 988)
    upset = update_elo(1000, 1200).winner - 1000
    favourite = update_elo(1200, 1000).winner - 1200
    assert upset > favourite, "upsets should move ratings more"
    rating = float(BASELINE_RATING)
    for step, ans in enumerate(["yes", "yes", "no", "skip", "yes"], start=1):
        after = rating_after_answer(rating, ans)
        print(f" {step:2d} | {ans:4s} | {rating:7.1f} -> {after:7.1f}")
        rating = after
