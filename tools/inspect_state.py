"""Inspect a persisted run state: invariants first, then a recovery dry run."""
from __future__ import annotations

import argparse
import json
from pathlib import Path

from lane_core.catalog import default_catalog
from lane_core.invariants import validate_invariants
from lane_core.recovery import recover_run_state


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description=__doc__)
    ap.add_argument("path", type=Path)
    ap.add_argument("--write", action="store_true", help="overwrite the file with the recovered state")
    args = ap.parse_args(argv)

    raw = args.path.read_bytes() if args.path.exists() else None
    catalog = default_catalog()

    try:
        data = json.loads(raw) if raw else {}
    except ValueError:
        data = None
    if isinstance(data, dict):
        report = validate_invariants(data, catalog)
        print(f"invariants ok={report.ok}")
        for err in report.errors: print(f"  ERROR   {err}")
        for warn in report.warnings: print(f"  WARNING {warn}")
    else:
        print("file is not a JSON object; skipping invariants")

    result = recover_run_state(raw, catalog)
    print(f"\nrecovery stage={result.stage}")
    for note in result.notes: print(f"  - {note}")
    for err in result.errors: print(f"  ! {err}")

    if args.write and result.stage != "valid":
        args.path.write_text(json.dumps(result.state.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
        print(f"wrote recovered state to {args.path}")
    return 0 if result.stage in ("valid", "empty") else 1


if __name__ == "__main__":
    raise SystemExit(main())
