from __future__ import annotations

import random

import pytest

from lane_core.catalog import LANE_IDS, StatementCatalog
from lane_core.selector import StatementSelector
from lane_core.state import fresh_run_state
from lane_core.types import RunState, Statement


def build_synthetic_catalog(
    *,
    lanes: list[str] | None = None,
    per_lane: int = 4,
) -> StatementCatalog:
    """Create a deterministic synthetic catalog for tests and smoke runs."""

    statements: list[Statement] = []
    for lane in lanes or list(LANE_IDS):
        for idx in range(per_lane):
            statements.append(
                Statement(
                    id=f"{lane}_s{idx}",
                    text=f"I like {lane} work #{idx}",
                    lane_id=lane,
                )
            )
    return StatementCatalog(statements)


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def catalog() -> StatementCatalog:
    return build_synthetic_catalog()


@pytest.fixture
def selector(catalog) -> StatementSelector:
    return StatementSelector(catalog, random.Random(7))


@pytest.fixture
def fresh() -> RunState:
    return fresh_run_state()
