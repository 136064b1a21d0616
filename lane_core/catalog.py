from __future__ import annotations
import json, importlib.resources as ir
from functools import lru_cache
from typing import Dict, Iterable, Iterator, List, Optional, Set
from .types import Lane, Statement

LANE_IDS = ["partnerships","content","community","growth","nil","talent","bizops","product"]


def _read_data(name: str) -> list:
    data = ir.files(__package__).joinpath(f"data/{name}").read_text(encoding="utf-8")
    return json.loads(data)


def load_lanes() -> List[Lane]:
    return [Lane(**r) for r in _read_data("lanes.json")]


def load_statement_records() -> List[dict]:
    """Raw catalog rows, unvalidated; used by the catalog audit."""
    return _read_data("statements.json")


def statement_from_record(r: dict) -> Statement:
    return Statement(
        id=r["id"],
        text=r["text"],
        lane_id=r["lane_id"],
        roles=tuple(r.get("roles") or ()),
        example=r.get("example"),
    )


def load_statements() -> List[Statement]:
    return [statement_from_record(r) for r in load_statement_records()]


class StatementCatalog:
    """Read-only statement lookup keyed by id, in catalog order."""

    def __init__(self, statements: Iterable[Statement]):
        self._items: List[Statement] = []
        self._by_id: Dict[str, Statement] = {}
        for st in statements:
            if st.lane_id not in LANE_IDS:
                raise ValueError(f"statement {st.id!r} has unknown lane {st.lane_id!r}")
            if st.id in self._by_id:
                raise ValueError(f"duplicate statement id {st.id!r}")
            self._items.append(st)
            self._by_id[st.id] = st

    def all(self) -> List[Statement]:
        return list(self._items)

    def by_id(self, statement_id: Optional[str]) -> Optional[Statement]:
        if not isinstance(statement_id, str):
            return None
        return self._by_id.get(statement_id)

    def is_valid_id(self, statement_id: object) -> bool:
        return isinstance(statement_id, str) and statement_id in self._by_id

    def lane_of(self, statement_id: Optional[str]) -> Optional[str]:
        st = self.by_id(statement_id)
        return st.lane_id if st else None

    def valid_ids(self) -> Set[str]:
        return set(self._by_id)

    def by_lane(self, lane_id: str) -> List[Statement]:
        return [st for st in self._items if st.lane_id == lane_id]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Statement]:
        return iter(self._items)

    def __contains__(self, statement_id: object) -> bool:
        return self.is_valid_id(statement_id)


@lru_cache(maxsize=1)
def default_catalog() -> StatementCatalog:
    return StatementCatalog(load_statements())


@lru_cache(maxsize=1)
def default_lanes() -> Dict[str, Lane]:
    return {lane.id: lane for lane in load_lanes()}
