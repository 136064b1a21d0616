from __future__ import annotations
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import logging, os, uuid, typing as t

# ---- Engine imports ----
from lane_core import config as lane_config
from lane_core.catalog import default_catalog
from lane_core.config import make_rng
from lane_core.engine import RunSession
from lane_core.metrics import MetricsBuffer
from lane_core.types import Finished, Statement
from lane_core.audit_export import replay_events, to_json as audit_to_json, to_csv as audit_to_csv
from .storage import (
    drop_reports_for_session,
    find_report_by_session,
    is_safe_id,
    load_report,
    run_exists,
    run_persistence,
    save_report,
    utcnow_iso,
)

log = logging.getLogger(__name__)

SESS: dict[str, RunSession] = {}
METRICS = MetricsBuffer()

app = FastAPI(title="Career Lane Swipe API")


@app.get("/")
def root():
    return {"status": "ok", "service": "career-lane-swipe-api"}


ALLOWED_ORIGINS = [o for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class StartReq(BaseModel):
    seed: int | None = None

class AnswerReq(BaseModel):
    answer: t.Literal["yes", "no", "skip", "meh"]
    statement_id: str | None = None

# ---- Helpers ----
def _settle_sec() -> float:
    return max(0, lane_config.SETTLE_MS) / 1000.0


def _session_opts() -> dict[str, t.Any]:
    return {"settle_sec": _settle_sec(), "stop_on_convergence": lane_config.EARLY_FINISH_ENABLED}


def _new_session(sid: str, seed: int | None = None) -> RunSession:
    return RunSession(
        default_catalog(),
        run_persistence(sid),
        METRICS,
        make_rng(seed),
        **_session_opts(),
    )


def _get_session(sid: str) -> RunSession:
    sess = SESS.get(sid)
    if sess is not None:
        return sess
    if not is_safe_id(sid) or not run_exists(sid):
        raise HTTPException(404, "session not found")
    sess = RunSession.load(run_persistence(sid), default_catalog(), METRICS, make_rng(), **_session_opts())
    SESS[sid] = sess
    return sess


def _serialize_statement(st: Statement | None):
    if st is None: return None
    return {
        "id": st.id,
        "text": st.text,
        "lane_id": st.lane_id,
        "roles": list(st.roles),
        "example": st.example,
    }


def _view(sid: str, sess: RunSession) -> dict[str, t.Any]:
    state = sess.state
    phase = sess.phase
    return {
        "session_id": sid,
        "phase": "finished" if isinstance(phase, Finished) else "active",
        "finish_reason": phase.reason if isinstance(phase, Finished) else None,
        "round": state.round,
        "max_rounds": state.max_rounds,
        "statement": _serialize_statement(sess.current_statement),
        "answer_counts": state.answer_counts.to_dict(),
        "convergence": sess.convergence.to_dict(),
        "can_undo": bool(state.history),
        "settling": sess.is_settling,
    }

# ---- Health ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "statements": len(default_catalog()),
        "max_rounds": lane_config.MAX_ROUNDS,
        "settle_ms": lane_config.SETTLE_MS,
        "audit_export": lane_config.AUDIT_EXPORT_ENABLED,
    }

# ---- Session endpoints ----
@app.post("/session/start")
def start(req: StartReq | None = None):
    sid = str(uuid.uuid4())
    sess = _new_session(sid, req.seed if req else None)
    SESS[sid] = sess
    return _view(sid, sess)


@app.get("/session/{sid}")
def get_session(sid: str):
    return _view(sid, _get_session(sid))


@app.post("/session/{sid}/answer")
def answer(sid: str, req: AnswerReq):
    sess = _get_session(sid)
    if req.statement_id is not None and req.statement_id != sess.state.current_statement_id:
        return {"accepted": False, "reason": "stale", "ended": False, **_view(sid, sess)}
    res = sess.commit_answer(req.answer)
    return {"accepted": res.accepted, "reason": res.reason, "ended": res.ended, **_view(sid, sess)}


@app.post("/session/{sid}/settle")
def settle(sid: str):
    sess = _get_session(sid)
    sess.settle()
    return _view(sid, sess)


@app.post("/session/{sid}/undo")
def undo(sid: str):
    sess = _get_session(sid)
    ok = sess.undo()
    if ok:
        # a stored report describes the run before the undo
        drop_reports_for_session(sid)
    return {"undone": ok, **_view(sid, sess)}


@app.post("/session/{sid}/reset")
def reset(sid: str):
    sess = _get_session(sid)
    sess.reset()
    drop_reports_for_session(sid)
    return _view(sid, sess)


@app.get("/session/{sid}/results")
def results(sid: str):
    sess = _get_session(sid)
    body = sess.results()
    if not body.get("finished"):
        return body
    stored = find_report_by_session(sid)
    if stored:
        return stored
    rid = str(uuid.uuid4())
    created = utcnow_iso()
    report = dict(body)
    report["id"] = rid
    report["reportId"] = rid
    report["created_at"] = created
    report["meta"] = {"sessionId": sid, "createdAt": created, "reportId": rid}
    save_report(rid, report, {
        "sessionId": sid,
        "createdAt": created,
        "topLane": (body.get("top_lane") or {}).get("id"),
        "confidence": body.get("confidence"),
    })
    return report


@app.get("/session/{sid}/invariants")
def invariants(sid: str):
    return _get_session(sid).invariants().to_dict()


@app.get("/session/{sid}/audit.json")
def get_audit_json(sid: str):
    if not lane_config.AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")
    sess = _get_session(sid)
    payload = audit_to_json(replay_events(sess.state.history))
    return {"session_id": sid, **payload}


@app.get("/session/{sid}/audit.csv")
def get_audit_csv(sid: str):
    if not lane_config.AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")
    sess = _get_session(sid)
    body = audit_to_csv(replay_events(sess.state.history))
    filename = f"{sid}_audit.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )


@app.get("/reports/{report_id}")
def get_report(report_id: str):
    if not is_safe_id(report_id):
        raise HTTPException(404, "report not found")
    report = load_report(report_id)
    if not report:
        raise HTTPException(404, "report not found")
    return report


@app.get("/metrics/recent")
def recent_metrics():
    return {"events": METRICS.events()}
