from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from . import config
from .catalog import LANE_IDS, StatementCatalog
from .types import ANSWERS, RunState

_REQUIRED = (
    "round",
    "max_rounds",
    "lane_ratings",
    "history",
    "seen_statement_ids",
    "lane_counts_shown",
    "answer_counts",
    "current_statement_id",
    "presented_statement_ids",
    "schema_version",
)


@dataclass
class InvariantReport:
    ok: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"ok": self.ok, "errors": list(self.errors), "warnings": list(self.warnings)}


def _is_int(val: object) -> bool:
    return isinstance(val, int) and not isinstance(val, bool)


def _str_list(rs: Dict[str, Any], key: str, errors: List[str]) -> List[str]:
    """Return the string items of a list field; anything else is reported."""

    val = rs.get(key)
    if val is None:
        return []
    if not isinstance(val, list):
        errors.append(f"{key} must be a list")
        return []
    bad = [item for item in val if not isinstance(item, str)]
    if bad:
        errors.append(f"{key} contains {len(bad)} non-string ids")
    return [item for item in val if isinstance(item, str)]


def validate_invariants(state: Union[RunState, Dict[str, Any]], catalog: StatementCatalog) -> InvariantReport:
    """Read-only integrity check; errors are must-fix, warnings should-fix."""

    rs: Dict[str, Any] = state.to_dict() if isinstance(state, RunState) else dict(state or {})
    errors: List[str] = []
    warnings: List[str] = []

    for key in _REQUIRED:
        if key not in rs:
            errors.append(f"missing field {key}")

    version = rs.get("schema_version")
    if version is None:
        errors.append("schema_version missing")
    elif version != config.SCHEMA_VERSION:
        errors.append(f"schema_version {version!r} is not {config.SCHEMA_VERSION}")

    rnd, max_rounds = rs.get("round"), rs.get("max_rounds")
    if not _is_int(rnd) or not _is_int(max_rounds):
        errors.append("round and max_rounds must be integers")
        rnd = max_rounds = None
    elif rnd < 1:
        errors.append(f"round is {rnd} (must be >= 1)")
    elif rnd > max_rounds + 1:
        errors.append(f"round ({rnd}) exceeds max_rounds + 1 ({max_rounds + 1})")

    ratings = rs.get("lane_ratings") if isinstance(rs.get("lane_ratings"), dict) else {}
    missing = [lane for lane in LANE_IDS if lane not in ratings]
    extra = [lane for lane in ratings if lane not in LANE_IDS]
    if missing:
        errors.append(f"lane_ratings missing lanes: {', '.join(missing)}")
    if extra:
        warnings.append(f"lane_ratings has extra lanes: {', '.join(map(str, extra))}")
    for lane, rating in ratings.items():
        if not isinstance(rating, (int, float)) or isinstance(rating, bool) or not math.isfinite(rating):
            errors.append(f"lane_ratings[{lane!r}] is not a finite number")
        elif rating < config.RATING_PLAUSIBLE_MIN or rating > config.RATING_PLAUSIBLE_MAX:
            warnings.append(
                f"lane_ratings[{lane!r}] = {rating} outside "
                f"{config.RATING_PLAUSIBLE_MIN}-{config.RATING_PLAUSIBLE_MAX}"
            )

    presented = _str_list(rs, "presented_statement_ids", errors)
    current = rs.get("current_statement_id")
    if current is not None and not isinstance(current, str):
        errors.append(f"current_statement_id must be a string or null, got {type(current).__name__}")
        current = None
    if current is not None:
        if not catalog.is_valid_id(current):
            errors.append(f"current_statement_id {current!r} is not a valid statement id")
        if not presented or presented[-1] != current:
            top = presented[-1] if presented else None
            errors.append(f"current_statement_id {current!r} does not match last presented {top!r}")
        if rnd is not None and max_rounds is not None and rnd > max_rounds:
            errors.append("statement pending after max_rounds")

    seen = _str_list(rs, "seen_statement_ids", errors)
    bad_seen = [s for s in seen if not catalog.is_valid_id(s)]
    if bad_seen:
        errors.append(f"seen_statement_ids contains invalid ids: {', '.join(map(str, bad_seen))}")

    if len(set(presented)) != len(presented):
        warnings.append(
            f"presented_statement_ids has duplicates ({len(presented)} items, {len(set(presented))} unique)"
        )

    history = rs.get("history")
    if history is None:
        history = []
    elif not isinstance(history, list):
        errors.append("history must be a list")
        history = []
    answered = 0
    lane_counts: Dict[str, int] = {}
    history_ids: List[str] = []
    for idx, entry in enumerate(history):
        if not isinstance(entry, dict):
            errors.append(f"history[{idx}] is not an object")
            continue
        sid = entry.get("statement_id")
        if sid is not None and not isinstance(sid, str):
            errors.append(f"history[{idx}] statement_id must be a string")
            sid = None
        if not sid:
            errors.append(f"history[{idx}] missing statement_id")
        elif not catalog.is_valid_id(sid):
            warnings.append(f"history[{idx}] has invalid statement_id: {sid}")
        elif sid not in presented:
            warnings.append(f"history[{idx}] statement_id {sid!r} not in presented_statement_ids")
        if sid and sid not in history_ids:
            history_ids.append(sid)
        lane = entry.get("lane_id")
        if not lane:
            errors.append(f"history[{idx}] missing lane_id")
        elif not isinstance(lane, str):
            errors.append(f"history[{idx}] lane_id must be a string")
        else:
            lane_counts[lane] = lane_counts.get(lane, 0) + 1
        if "answer" not in entry:
            errors.append(f"history[{idx}] missing answer")
        elif entry["answer"] is None:
            warnings.append(f"history[{idx}] has no answer")
        elif not isinstance(entry["answer"], str) or entry["answer"] not in ANSWERS:
            errors.append(f"history[{idx}] has unknown answer {entry['answer']!r}")
        else:
            answered += 1
        if not entry.get("timestamp"):
            errors.append(f"history[{idx}] missing timestamp")

    counts = rs.get("answer_counts") if isinstance(rs.get("answer_counts"), dict) else {}
    total = 0
    for k in ("yes", "no", "skip"):
        n = counts.get(k, 0)
        if not _is_int(n):
            errors.append(f"answer_counts.{k} must be an integer")
            continue
        total += n
    if answered != total:
        warnings.append(f"answered history entries ({answered}) do not match answer_counts total ({total})")
    if isinstance(rs.get("lane_counts_shown"), dict) and rs["lane_counts_shown"] != lane_counts:
        warnings.append("lane_counts_shown does not match history")
    if list(seen) != history_ids:
        warnings.append("seen_statement_ids does not match history")

    if current is None and not history and (rnd is None or max_rounds is None or rnd <= max_rounds):
        warnings.append("run has no statement primed")

    return InvariantReport(ok=not errors, errors=errors, warnings=warnings)
