"""Load-time recovery: parse, validate, migrate, heal, reset.

Stages run in strict order and stop at the first one that yields a valid
state.  Corruption never escapes as an exception; the worst case is a fresh
run with notes explaining why the old one was discarded.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .catalog import StatementCatalog, default_catalog
from .heal import heal_run_state
from .schemas import validate_run_state
from .state import fresh_run_state, migrate_run_state, utcnow_iso
from .types import RunState

log = logging.getLogger(__name__)

STAGES = ("empty", "valid", "migrated", "healed", "reset")


@dataclass
class RecoveryResult:
    state: RunState
    stage: str
    notes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return self.stage in ("migrated", "healed", "reset")

    def to_dict(self) -> dict:
        return {"stage": self.stage, "notes": list(self.notes), "errors": list(self.errors)}


def recover_run_state(
    raw: Union[bytes, str, None],
    catalog: Optional[StatementCatalog] = None,
    *,
    now: Optional[str] = None,
) -> RecoveryResult:
    catalog = catalog or default_catalog()
    now = now or utcnow_iso()

    if raw is None or (isinstance(raw, (bytes, str)) and not raw.strip()):
        return RecoveryResult(state=fresh_run_state(), stage="empty")

    try:
        data = json.loads(raw)
    except (ValueError, TypeError) as exc:
        log.warning("recovery: unreadable run state, resetting (%s)", exc)
        return RecoveryResult(
            state=fresh_run_state(), stage="reset", notes=["state was not valid JSON; started a fresh run"]
        )
    if not isinstance(data, dict):
        log.warning("recovery: run state is %s, not an object; resetting", type(data).__name__)
        return RecoveryResult(
            state=fresh_run_state(), stage="reset", notes=["state was not an object; started a fresh run"]
        )

    state, errors = validate_run_state(data, catalog)
    if state is not None:
        return RecoveryResult(state=state, stage="valid")

    migrated, notes = migrate_run_state(data, catalog, now=now)
    state, errors = validate_run_state(migrated, catalog)
    if state is not None:
        for note in notes:
            log.info("migrate: %s", note)
        return RecoveryResult(state=state, stage="migrated", notes=notes)

    healed = heal_run_state(migrated, catalog)
    notes = notes + healed.notes
    state, errors = validate_run_state(healed.state, catalog)
    if state is not None:
        return RecoveryResult(state=state, stage="healed", notes=notes)

    log.warning("recovery: state still invalid after heal, resetting: %s", "; ".join(errors))
    notes.append("state could not be repaired; started a fresh run")
    return RecoveryResult(state=fresh_run_state(), stage="reset", notes=notes, errors=errors)
