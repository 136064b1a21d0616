# autoplay.py
from __future__ import annotations
import argparse, os, random, datetime
from typing import Dict, List, Optional
from lane_core.catalog import LANE_IDS, default_catalog
from lane_core.engine import RunSession
from lane_core.metrics import MetricsBuffer
from lane_core.persistence import MemoryPersistence
from lane_core.reporting import write_report
from lane_core.types import Statement

def _new_run_id() -> str:
    return datetime.datetime.now().strftime("run_%Y%m%d_%H%M%S")

# persona -> lanes it leans towards
PERSONA_LANES: Dict[str, List[str]] = {
    "dealmaker": ["partnerships", "talent"],
    "storyteller": ["content", "community"],
    "analyst": ["growth", "bizops"],
    "builder": ["product", "growth"],
    "operator": ["nil", "bizops"],
}

def _answer_for(st: Statement, profile: str, lanes: List[str], rng: random.Random) -> str:
    if profile == "skipper":
        return "skip" if rng.random() < 0.6 else rng.choice(["yes", "no"])
    if profile == "random":
        return rng.choice(["yes", "no", "skip"])
    if profile == "contrarian":
        return "no" if st.lane_id in lanes else "yes"
    if st.lane_id in lanes:
        return "yes" if rng.random() < 0.9 else "skip"
    return "no" if rng.random() < 0.8 else "skip"

def run(profile: str, persona: str, seed: Optional[int], out_dir: str = "reports") -> str:
    rng = random.Random(seed or 1234)
    lanes = PERSONA_LANES.get(persona) or [rng.choice(LANE_IDS)]
    buf = MetricsBuffer()
    sess = RunSession(default_catalog(), MemoryPersistence(), buf, random.Random(rng.random()), settle_sec=0)

    answered = 0
    while True:
        st = sess.current_statement
        if st is None: break
        res = sess.commit_answer(_answer_for(st, profile, lanes, rng))
        if res.accepted: answered += 1
    if answered <= 0: raise RuntimeError("Driver answered 0 statements.")

    results = sess.results()
    conv = sess.convergence
    print(f"persona={persona} profile={profile} answers={answered} phase={sess.phase} "
          f"top={conv.top_lane_id} runner_up={conv.runner_up_lane_id} gap={conv.rating_gap:.0f} "
          f"label={conv.label} pct={conv.confidence_pct} events={len(buf.events())}")

    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(out_dir, exist_ok=True)
    base = f"auto_{persona}_{profile}_{ts}"
    out = write_report(results, os.path.join(out_dir, base + ".html"))
    print(f"Report: {out}")
    return out

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--profile", choices=["focused", "contrarian", "skipper", "random"], default="focused")
    ap.add_argument("--persona", choices=sorted(PERSONA_LANES) + ["any"], default="dealmaker")
    ap.add_argument("--seed", type=int, default=1337)
    ap.add_argument("--runs", type=int, default=1)
    ap.add_argument("--out", default="reports")
    a = ap.parse_args()
    for i in range(max(1, a.runs)):
        run(a.profile, a.persona, a.seed + i, a.out)

if __name__ == "__main__":
    main()
