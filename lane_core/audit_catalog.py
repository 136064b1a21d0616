from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

from . import config
from .catalog import LANE_IDS, load_statement_records


def audit_statements(records: Iterable[dict]) -> dict[str, object]:
    coverage: dict[str, int] = {lane: 0 for lane in LANE_IDS}
    unknown_lanes: dict[str, int] = {}
    seen_ids: set[str] = set()
    duplicates: list[str] = []
    empty_text: list[str] = []
    total = 0

    for rec in records:
        total += 1
        sid = str(rec.get("id", ""))
        lane = rec.get("lane_id")
        if sid in seen_ids:
            duplicates.append(sid)
        seen_ids.add(sid)
        if lane in coverage:
            coverage[lane] += 1
        else:
            unknown_lanes[str(lane)] = unknown_lanes.get(str(lane), 0) + 1
        if not str(rec.get("text") or "").strip():
            empty_text.append(sid)

    warnings: list[str] = []
    for lane, n in coverage.items():
        if n < config.CATALOG_MIN_PER_LANE:
            warnings.append(f"{lane} has {n} statements (<{config.CATALOG_MIN_PER_LANE})")
    for lane, n in sorted(unknown_lanes.items()):
        warnings.append(f"{n} statements reference unknown lane {lane!r}")
    for sid in duplicates:
        warnings.append(f"duplicate statement id {sid!r}")
    for sid in empty_text:
        warnings.append(f"statement {sid!r} has empty text")
    if total < config.MAX_ROUNDS:
        warnings.append(
            f"catalog has {total} statements (<{config.MAX_ROUNDS} max_rounds); runs will end by exhaustion"
        )

    totals = {"statements": total, "lanes_covered": sum(1 for n in coverage.values() if n)}
    return {"coverage": coverage, "warnings": warnings, "totals": totals}


def print_report(summary: dict[str, object]) -> None:
    coverage: dict[str, int] = summary["coverage"]  # type: ignore[assignment]
    print("=== Catalog Coverage ===")
    for lane in LANE_IDS:
        print(f"  {lane:<13s} {coverage.get(lane, 0):3d}")

    warnings: list[str] = summary["warnings"]  # type: ignore[assignment]
    if warnings:
        print("\nWarnings:")
        for msg in warnings:
            print(f" - {msg}")
    else:
        print("\nNo warnings.")

    print("\nTotals:", summary["totals"])


def write_summary(summary: dict[str, object], path: Path = Path("catalog_audit.json")) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    print(text)
    return text


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Audit the statement catalog.")
    ap.add_argument("--out", default="catalog_audit.json")
    args = ap.parse_args(argv)
    summary = audit_statements(load_statement_records())
    print_report(summary)
    write_summary(summary, Path(args.out))
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
