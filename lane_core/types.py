from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Literal, Tuple, Union

Answer = Literal["yes", "no", "skip", "meh"]
ANSWERS: Tuple[str, ...] = ("yes", "no", "skip", "meh")


@dataclass(frozen=True)
class Lane:
    id: str; name: str; description: str = ""


@dataclass(frozen=True)
class Statement:
    id: str; text: str; lane_id: str
    roles: Tuple[str, ...] = ()
    example: Optional[str] = None


@dataclass
class HistoryEntry:
    statement_id: str
    lane_id: str
    answer: Optional[Answer]
    timestamp: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "statement_id": self.statement_id,
            "lane_id": self.lane_id,
            "answer": self.answer,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, object]) -> "HistoryEntry":
        return cls(
            statement_id=str(raw["statement_id"]),
            lane_id=str(raw["lane_id"]),
            answer=raw.get("answer"),  # type: ignore[arg-type]
            timestamp=str(raw["timestamp"]),
        )


@dataclass
class AnswerCounts:
    yes: int = 0
    no: int = 0
    skip: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.no + self.skip

    def to_dict(self) -> Dict[str, int]:
        return {"yes": self.yes, "no": self.no, "skip": self.skip}


@dataclass
class RunState:
    round: int
    max_rounds: int
    lane_ratings: Dict[str, float]
    history: List[HistoryEntry] = field(default_factory=list)
    seen_statement_ids: List[str] = field(default_factory=list)
    lane_counts_shown: Dict[str, int] = field(default_factory=dict)
    answer_counts: AnswerCounts = field(default_factory=AnswerCounts)
    current_statement_id: Optional[str] = None
    presented_statement_ids: List[str] = field(default_factory=list)
    schema_version: int = 2

    def to_dict(self) -> Dict[str, object]:
        return {
            "round": self.round,
            "max_rounds": self.max_rounds,
            "lane_ratings": dict(self.lane_ratings),
            "history": [h.to_dict() for h in self.history],
            "seen_statement_ids": list(self.seen_statement_ids),
            "lane_counts_shown": dict(self.lane_counts_shown),
            "answer_counts": self.answer_counts.to_dict(),
            "current_statement_id": self.current_statement_id,
            "presented_statement_ids": list(self.presented_statement_ids),
            "schema_version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, object]) -> "RunState":
        counts = raw.get("answer_counts") or {}
        return cls(
            round=int(raw["round"]),  # type: ignore[arg-type]
            max_rounds=int(raw["max_rounds"]),  # type: ignore[arg-type]
            lane_ratings={str(k): v for k, v in dict(raw["lane_ratings"]).items()},  # type: ignore[arg-type]
            history=[HistoryEntry.from_dict(h) for h in raw.get("history") or []],  # type: ignore[union-attr]
            seen_statement_ids=[str(s) for s in raw.get("seen_statement_ids") or []],  # type: ignore[union-attr]
            lane_counts_shown={str(k): int(v) for k, v in dict(raw.get("lane_counts_shown") or {}).items()},
            answer_counts=AnswerCounts(
                yes=int(counts.get("yes", 0)),  # type: ignore[union-attr]
                no=int(counts.get("no", 0)),  # type: ignore[union-attr]
                skip=int(counts.get("skip", 0)),  # type: ignore[union-attr]
            ),
            current_statement_id=raw.get("current_statement_id"),  # type: ignore[arg-type]
            presented_statement_ids=[str(s) for s in raw.get("presented_statement_ids") or []],  # type: ignore[union-attr]
            schema_version=int(raw.get("schema_version", 2)),  # type: ignore[arg-type]
        )

    def copy(self) -> "RunState":
        return RunState.from_dict(self.to_dict())


@dataclass(frozen=True)
class Active:
    statement_id: str


@dataclass(frozen=True)
class Finished:
    reason: Literal["max_rounds", "exhausted", "stopped"]


RunPhase = Union[Active, Finished]


@dataclass
class Convergence:
    top_lane_id: Optional[str]
    runner_up_lane_id: Optional[str]
    rating_gap: float
    skip_rate: float
    confidence_pct: int
    label: Literal["Strong", "Medium", "Weak", "Exploratory"]
    can_finish_early: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "top_lane_id": self.top_lane_id,
            "runner_up_lane_id": self.runner_up_lane_id,
            "rating_gap": self.rating_gap,
            "skip_rate": self.skip_rate,
            "confidence_pct": self.confidence_pct,
            "label": self.label,
            "can_finish_early": self.can_finish_early,
        }
