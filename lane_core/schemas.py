"""Pydantic models for the persisted run state and analytics buffer.

``validate_run_state`` is the gate every persisted payload passes through
before the engine will use it: the model checks shape and types, then
``structural_errors`` checks the cross-field rules that need the catalog.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, ValidationError, field_validator

from . import config
from .catalog import LANE_IDS, StatementCatalog
from .state import (
    answer_counts_from_history,
    expected_presented,
    lane_counts_from_history,
    seen_ids_from_history,
)
from .types import RunState


class HistoryEntryModel(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    statement_id: str = Field(min_length=1)
    lane_id: str
    answer: Optional[Literal["yes", "no", "skip", "meh"]] = None
    timestamp: str = Field(min_length=1)

    @field_validator("lane_id")
    @classmethod
    def _known_lane(cls, v: str) -> str:
        if v not in LANE_IDS:
            raise ValueError(f"unknown lane {v!r}")
        return v


class AnswerCountsModel(BaseModel):
    yes: int = Field(ge=0)
    no: int = Field(ge=0)
    skip: int = Field(ge=0)


class RunStateModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    round: int = Field(ge=1)
    max_rounds: int = Field(ge=1)
    lane_ratings: Dict[str, FiniteFloat]
    history: List[HistoryEntryModel]
    seen_statement_ids: List[str]
    lane_counts_shown: Dict[str, int]
    answer_counts: AnswerCountsModel
    current_statement_id: Optional[str]
    presented_statement_ids: List[str]
    schema_version: int

    @field_validator("lane_ratings")
    @classmethod
    def _exact_lanes(cls, v: Dict[str, float]) -> Dict[str, float]:
        missing = [lane for lane in LANE_IDS if lane not in v]
        extra = sorted(k for k in v if k not in LANE_IDS)
        if missing or extra:
            raise ValueError(f"lane_ratings keys mismatch (missing={missing}, extra={extra})")
        return v

    @field_validator("lane_counts_shown")
    @classmethod
    def _known_count_lanes(cls, v: Dict[str, int]) -> Dict[str, int]:
        extra = sorted(k for k in v if k not in LANE_IDS)
        if extra:
            raise ValueError(f"lane_counts_shown has unknown lanes {extra}")
        return v

    @field_validator("schema_version")
    @classmethod
    def _current_version(cls, v: int) -> int:
        if v != config.SCHEMA_VERSION:
            raise ValueError(f"schema_version {v} is not {config.SCHEMA_VERSION}")
        return v


class MetricEventModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str = Field(min_length=1)
    ts: str


def _format_errors(exc: ValidationError) -> List[str]:
    out: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        out.append(f"{loc or '<root>'}: {err.get('msg')}")
    return out


def structural_errors(state: RunState, catalog: StatementCatalog) -> List[str]:
    errors: List[str] = []
    presented = state.presented_statement_ids
    current = state.current_statement_id

    if state.max_rounds != config.MAX_ROUNDS:
        errors.append(f"max_rounds {state.max_rounds} is not {config.MAX_ROUNDS}")
    if state.round > state.max_rounds + 1:
        errors.append(f"round {state.round} beyond max_rounds + 1")

    if current is not None:
        if not catalog.is_valid_id(current):
            errors.append(f"current_statement_id {current!r} not in catalog")
        if not presented or presented[-1] != current:
            errors.append("current_statement_id is not the top of presented_statement_ids")
        if state.round > state.max_rounds:
            errors.append("statement pending after max_rounds")
        if current in state.seen_statement_ids:
            errors.append(f"current_statement_id {current!r} was already answered")

    if len(set(presented)) != len(presented):
        errors.append("presented_statement_ids has duplicates")
    bad_presented = [p for p in presented if not catalog.is_valid_id(p)]
    if bad_presented:
        errors.append(f"presented_statement_ids has unknown ids {bad_presented}")

    for idx, entry in enumerate(state.history):
        if not catalog.is_valid_id(entry.statement_id):
            errors.append(f"history[{idx}] unknown statement {entry.statement_id!r}")
        elif catalog.lane_of(entry.statement_id) != entry.lane_id:
            errors.append(f"history[{idx}] lane {entry.lane_id!r} does not match catalog")

    bad_seen = [s for s in state.seen_statement_ids if not catalog.is_valid_id(s)]
    if bad_seen:
        errors.append(f"seen_statement_ids has unknown ids {bad_seen}")

    if state.seen_statement_ids != seen_ids_from_history(state.history):
        errors.append("seen_statement_ids does not match history")
    if state.lane_counts_shown != lane_counts_from_history(state.history):
        errors.append("lane_counts_shown does not match history")
    if state.answer_counts.to_dict() != answer_counts_from_history(state.history).to_dict():
        errors.append("answer_counts does not match history")
    if presented != expected_presented(state.history, current):
        errors.append("presented_statement_ids is not history order plus the pending statement")
    return errors


def validate_run_state(data: Any, catalog: StatementCatalog) -> Tuple[Optional[RunState], List[str]]:
    """Validate a decoded payload; returns ``(state, [])`` or ``(None, errors)``."""

    if not isinstance(data, dict):
        return None, ["<root>: payload is not an object"]
    try:
        model = RunStateModel.model_validate(data)
    except ValidationError as exc:
        return None, _format_errors(exc)
    state = RunState.from_dict(model.model_dump())
    errors = structural_errors(state, catalog)
    if errors:
        return None, errors
    return state, []
