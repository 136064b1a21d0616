"""Fire-and-forget analytics: a rolling event buffer logged as JSON lines."""
from __future__ import annotations

import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol

from pydantic import ValidationError

from . import config
from .schemas import MetricEventModel

log = logging.getLogger(__name__)


class AnalyticsSink(Protocol):
    def record(self, event_name: str, props: Dict[str, Any]) -> None: ...


class NullSink:
    def record(self, event_name: str, props: Dict[str, Any]) -> None:
        return None


class MetricsBuffer:
    """Keeps the most recent events in memory; oldest are dropped first."""

    def __init__(self, max_events: Optional[int] = None):
        self.max_events = max_events if max_events is not None else config.METRICS_MAX_EVENTS
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max(1, self.max_events))

    def record(self, event_name: str, props: Dict[str, Any]) -> None:
        event = {"event": event_name, "ts": datetime.now(timezone.utc).isoformat()}
        event.update(props or {})
        self._events.append(event)
        log.info("metric %s", json.dumps(event, sort_keys=True, default=str))

    def events(self) -> List[Dict[str, Any]]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()

    def dump(self) -> str:
        return json.dumps(self.events(), default=str)

    def restore(self, raw: Optional[str]) -> int:
        """Reload a dumped buffer; malformed payloads leave it empty."""

        self._events.clear()
        if not raw:
            return 0
        try:
            rows = json.loads(raw)
            if not isinstance(rows, list):
                raise ValueError("metrics buffer is not a list")
            events = [MetricEventModel.model_validate(r).model_dump() for r in rows]
        except (ValueError, ValidationError) as exc:
            log.warning("discarding unreadable metrics buffer: %s", exc)
            return 0
        self._events.extend(events)
        return len(self._events)


def safe_record(sink: Optional[AnalyticsSink], event_name: str, props: Dict[str, Any]) -> None:
    if sink is None:
        return
    try:
        sink.record(event_name, props)
    except Exception as exc:
        log.warning("analytics sink failed for %s: %s", event_name, exc)
