from __future__ import annotations

import json

import lane_core.audit_catalog as audit_catalog
from lane_core import config
from lane_core.catalog import load_statement_records


def _records():
    return [
        {"id": "a", "lane_id": "growth", "text": "I like funnels"},
        {"id": "a", "lane_id": "growth", "text": "I like pricing"},
        {"id": "b", "lane_id": "esports", "text": "I like esports"},
        {"id": "c", "lane_id": "content", "text": "   "},
    ]


def test_audit_flags_sparse_and_broken_rows(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "CATALOG_MIN_PER_LANE", 2, raising=False)

    summary = audit_catalog.audit_statements(_records())

    assert summary["coverage"]["growth"] == 2
    assert summary["coverage"]["product"] == 0
    joined = "\n".join(summary["warnings"])
    assert "product has 0 statements (<2)" in joined
    assert "content has 1 statements (<2)" in joined
    assert "unknown lane 'esports'" in joined
    assert "duplicate statement id 'a'" in joined
    assert "statement 'c' has empty text" in joined
    assert "runs will end by exhaustion" in joined
    assert summary["totals"] == {"statements": 4, "lanes_covered": 2}

    outfile = tmp_path / "catalog_audit.json"
    text = audit_catalog.write_summary(summary, path=outfile)
    assert outfile.read_text(encoding="utf-8").strip() == text


def test_shipped_catalog_is_clean():
    summary = audit_catalog.audit_statements(load_statement_records())
    assert summary["warnings"] == []
    assert summary["totals"]["lanes_covered"] == 8


def test_main_returns_warning_exit(monkeypatch, capsys, tmp_path):
    monkeypatch.setattr(audit_catalog, "load_statement_records", _records)
    out = tmp_path / "audit.json"

    exit_code = audit_catalog.main(["--out", str(out)])
    captured = capsys.readouterr()

    assert exit_code == 2
    assert "Catalog Coverage" in captured.out
    assert json.loads(out.read_text(encoding="utf-8"))["totals"]["statements"] == 4


def test_main_clean_exit(tmp_path, capsys):
    assert audit_catalog.main(["--out", str(tmp_path / "ok.json")]) == 0
    assert "No warnings." in capsys.readouterr().out
