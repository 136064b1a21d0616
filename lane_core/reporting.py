# lane_core/reporting.py
from __future__ import annotations
import html, json
from pathlib import Path
from typing import Any, Dict, Optional

from .catalog import StatementCatalog, default_lanes
from .convergence import summarize, top_lanes
from .explain import lane_support_summary, top_signals
from .transitions import run_phase
from .types import Finished, Lane, RunState

# -------- utils: make any object JSON-safe ----------
def _to_basic(x: Any) -> Any:
    if x is None or isinstance(x, (bool, int, float, str)):
        return x
    if isinstance(x, dict):
        return {str(k): _to_basic(v) for k, v in x.items()}
    if isinstance(x, (list, tuple, set)):
        return [_to_basic(v) for v in x]
    if hasattr(x, "to_dict"):
        try:
            return _to_basic(x.to_dict())  # type: ignore[attr-defined]
        except Exception:
            pass
    if hasattr(x, "__dict__"):
        try:
            return _to_basic(vars(x))
        except Exception:
            pass
    return str(x)


def _lane_view(lane_id: Optional[str], lanes: Dict[str, Lane], rating: Optional[float]) -> Optional[Dict[str, Any]]:
    if lane_id is None:
        return None
    lane = lanes.get(lane_id)
    return {
        "id": lane_id,
        "name": lane.name if lane else lane_id,
        "description": lane.description if lane else "",
        "rating": rating,
    }


def build_results(
    state: RunState,
    catalog: StatementCatalog,
    lanes: Optional[Dict[str, Lane]] = None,
) -> Dict[str, Any]:
    """Results payload: winner, runner-up, confidence and the answers behind them."""

    lanes = lanes or default_lanes()
    conv = summarize(state)
    phase = run_phase(state, catalog)
    ranked = top_lanes(state.lane_ratings, n=len(state.lane_ratings))
    last = [
        {"statement_id": h.statement_id, "lane_id": h.lane_id, "answer": h.answer}
        for h in state.history[-3:]
    ]
    return _to_basic({
        "top_lane": _lane_view(conv.top_lane_id, lanes, state.lane_ratings.get(conv.top_lane_id or "")),
        "runner_up": _lane_view(conv.runner_up_lane_id, lanes, state.lane_ratings.get(conv.runner_up_lane_id or "")),
        "rating_gap": conv.rating_gap,
        "confidence": conv.label,
        "confidence_pct": conv.confidence_pct,
        "skip_rate": round(conv.skip_rate, 4),
        "answer_counts": state.answer_counts.to_dict(),
        "rounds_answered": len(state.history),
        "max_rounds": state.max_rounds,
        "finished": isinstance(phase, Finished),
        "finish_reason": phase.reason if isinstance(phase, Finished) else None,
        "ratings": [{"lane_id": lane, "rating": rating} for lane, rating in ranked],
        "why": top_signals(state, catalog, conv.top_lane_id) if conv.top_lane_id else [],
        "support": lane_support_summary(state, conv.top_lane_id) if conv.top_lane_id else {},
        "last_choices": last,
    })

# -------- minimal HTML rendering ----------
def _render_html(data: Dict[str, Any], title: str = "Career Lane Report") -> str:
    rows = []
    for row in data.get("ratings") or []:
        lane = html.escape(str(row.get("lane_id", "")))
        try:
            rating_txt = f"{float(row.get('rating')):.0f}"
        except Exception:
            rating_txt = str(row.get("rating", ""))
        rows.append(f"<tr><td>{lane}</td><td>{rating_txt}</td></tr>")

    top = data.get("top_lane") or {}
    top_txt = html.escape(str(top.get("name", "")))
    why = "".join(
        f"<li>{html.escape(str(s.get('text', '')))} <i>({html.escape(str(s.get('answer', '')))})</i></li>"
        for s in data.get("why") or []
    )

    table = (
        "<table border='1' cellpadding='6' cellspacing='0'>"
        "<thead><tr><th>Lane</th><th>Rating</th></tr></thead>"
        f"<tbody>{''.join(rows)}</tbody></table>"
    )

    return f"""<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<title>{html.escape(title)}</title>
<style>
 body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Ubuntu,'Helvetica Neue',Arial}}
 .wrap{{max-width:960px;margin:40px auto;padding:0 16px}}
 h1{{margin:0 0 16px}}
 .overall{{font-size:1.1rem;margin:8px 0 16px}}
 table{{border-collapse:collapse;width:100%}}
 th,td{{text-align:left}}
</style>
</head>
<body>
<div class="wrap">
  <h1>{html.escape(title)}</h1>
  <div class="overall"><b>Top lane:</b> {top_txt} &middot; <b>Confidence:</b> {html.escape(str(data.get('confidence', '')))} ({data.get('confidence_pct', '')}%)</div>
  {table}
  <h2>Why you matched</h2>
  <ul>{why}</ul>
</div>
</body>
</html>"""

# -------- public API used by autoplay.py / tools ----------
def write_report(result: Any, out_path: str, title: str = "Career Lane Report") -> str:
    """
    Writes HTML to out_path and a JSON sidecar next to it.
    Returns out_path.
    """
    basic = _to_basic(result)

    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    out.write_text(_render_html(basic, title=title), encoding="utf-8")

    sidecar = out.with_suffix(".json")
    with sidecar.open("w", encoding="utf-8") as f:
        json.dump(basic, f, ensure_ascii=False, indent=2)

    return str(out)
