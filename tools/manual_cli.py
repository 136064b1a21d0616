# tools/manual_cli.py
from __future__ import annotations
import argparse, os
from lane_core.catalog import default_catalog
from lane_core.config import LEGACY_RUN_STATE_FILE, RUN_STATE_FILE, make_rng
from lane_core.engine import RunSession
from lane_core.persistence import FilePersistence
from lane_core.reporting import write_report

KEYS = {"y": "yes", "n": "no", "s": "skip"}

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--state", default=os.path.join("data", RUN_STATE_FILE), help="where the run is persisted")
    ap.add_argument("--legacy", default=os.path.join("data", LEGACY_RUN_STATE_FILE), help="read-only legacy state file")
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--fresh", action="store_true", help="discard any saved run")
    a = ap.parse_args()

    store = FilePersistence(a.state, legacy_path=a.legacy)
    sess = RunSession.load(store, default_catalog(), rng=make_rng(a.seed), settle_sec=0)
    if a.fresh:
        sess.reset()
    if sess.recovery and sess.recovery.notes:
        print(f"Recovered saved run ({sess.recovery.stage}):")
        for note in sess.recovery.notes: print(f"  - {note}")
    print("Answer with y/n/s, u to undo, q to quit.")

    try:
        while True:
            st = sess.current_statement
            if st is None: break
            state = sess.state
            print(f"\n--- round {state.round}/{state.max_rounds} | {st.lane_id} | id={st.id} ---")
            print(f"  {st.text}")
            key = input("> ").strip().lower()[:1]
            if key == "q": break
            if key == "u":
                if not sess.undo(): print("Nothing to undo.")
                continue
            if key not in KEYS:
                print("Use y, n, s, u or q."); continue
            sess.commit_answer(KEYS[key])
    except (KeyboardInterrupt, EOFError):
        print("\nStopped by user.")

    conv = sess.convergence
    print(f"\nTop lane: {conv.top_lane_id} (runner-up {conv.runner_up_lane_id}), "
          f"gap {conv.rating_gap:.0f}, {conv.label} {conv.confidence_pct}%")
    os.makedirs("reports", exist_ok=True)
    out = write_report(sess.results(), "reports/manual_run.html")
    print(f"Report: {out}")

if __name__ == "__main__":
    main()
