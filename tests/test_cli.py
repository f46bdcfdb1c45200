"""Tests for the command-line interface."""

from __future__ import annotations

import json
import sys

import pytest

from dish_graph_pipeline.cli import main, read_content_units, read_known_restaurants, render_report
from dish_graph_pipeline.extraction.admission import SkipReason
from dish_graph_pipeline.models import SourceType
from dish_graph_pipeline.pipeline import BatchReport


@pytest.fixture
def units_file(tmp_path, franklin_text):
    lines = [
        json.dumps({"text": franklin_text, "source_type": "comment", "source_id": "c1", "upvotes": 12}),
        "",
        json.dumps({"text": "Parking downtown is a nightmare", "source_type": "comment", "source_id": "c2"}),
    ]
    path = tmp_path / "units.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def known_file(tmp_path):
    path = tmp_path / "known.txt"
    path.write_text("Franklin BBQ\n\n  Veracruz All Natural  \n", encoding="utf-8")
    return path


class TestInputFiles:
    """Tests for input readers."""

    def test_read_content_units_skips_blank_lines(self, units_file) -> None:
        units = read_content_units(units_file)

        assert [u.source_id for u in units] == ["c1", "c2"]
        assert units[0].source_type is SourceType.COMMENT
        assert units[0].upvotes == 12

    def test_read_known_restaurants(self, known_file) -> None:
        assert read_known_restaurants(known_file) == ["Franklin BBQ", "Veracruz All Natural"]
        assert read_known_restaurants(None) == []


class TestRenderReport:
    """Tests for the report table."""

    def test_rows(self) -> None:
        report = BatchReport(admitted=2, created_new=5)
        report.skip(SkipReason.HEARSAY)

        table = render_report(report)

        # Five counts, two mention totals, one skip reason
        assert table.row_count == 8
        assert table.title == "Batch report"


class TestMain:
    """Tests for main() argument handling."""

    def test_process_writes_report(
        self, monkeypatch: pytest.MonkeyPatch, units_file, known_file, tmp_path
    ) -> None:
        report_path = tmp_path / "report.json"
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "dish-graph",
                "process",
                str(units_file),
                "--known-restaurants",
                str(known_file),
                "--report",
                str(report_path),
            ],
        )

        main()

        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert report["admitted"] == 1
        assert report["skipped"] == 1
        assert report["created_new"] == 4
        assert report["skip_reasons"] == {"non_food": 1}

    def test_llm_requires_api_key(self, monkeypatch: pytest.MonkeyPatch, units_file) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setattr(sys, "argv", ["dish-graph", "process", str(units_file), "--llm"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_init_db_requires_neo4j_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NEO4J_PASSWORD", raising=False)
        monkeypatch.setattr(sys, "argv", ["dish-graph", "init-db"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_missing_command(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "argv", ["dish-graph"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2
