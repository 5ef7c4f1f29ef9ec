"""Tests for the Typer CLI."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import Session
from typer.testing import CliRunner

from kwpilot import cli
from kwpilot.research.pipeline import CourseResearchResult
from kwpilot.store import knowledge_base, prompt_store

runner = CliRunner()


@pytest.fixture(autouse=True)
def in_memory_db(engine, monkeypatch):
    monkeypatch.setattr(cli, "_open_session", lambda: Session(engine))


class TestImports:
    def test_import_performance(self, engine, tmp_path):
        report = tmp_path / "report.csv"
        report.write_text("Campaign report\nJanuary 2026\nCampaign,Clicks\nAWS,5\nAzure,7\n", encoding="utf-8")
        result = runner.invoke(cli.app, ["import-performance", str(report), "--customer-id", "123"])
        assert result.exit_code == 0, result.output
        assert "Import complete" in result.output
        with Session(engine) as session:
            assert knowledge_base.get_knowledge_base_counts(session)["campaigns"] == 2

    def test_missing_file(self, tmp_path):
        result = runner.invoke(cli.app, ["import-editor", str(tmp_path / "nope.csv")])
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_invalid_csv(self, tmp_path):
        bad = tmp_path / "bad.csv"
        bad.write_text("only one line\n", encoding="utf-8")
        result = runner.invoke(cli.app, ["import-performance", str(bad), "-c", "123"])
        assert result.exit_code == 1


class TestMaintenance:
    def test_seed_prompts_twice(self, engine):
        first = runner.invoke(cli.app, ["seed-prompts"])
        assert "Seeded: seed, analysis" in first.output
        second = runner.invoke(cli.app, ["seed-prompts"])
        assert "nothing seeded" in second.output
        with Session(engine) as session:
            assert prompt_store.get_prompt_stats(session)["seed"]["total_versions"] == 1

    def test_cleanup_cache(self):
        result = runner.invoke(cli.app, ["cleanup-cache"])
        assert result.exit_code == 0
        assert "Deleted Rows" in result.output


class TestResearch:
    def test_failure_exits_nonzero(self):
        failed = CourseResearchResult(course_name="AZ-104", status="error", error="No AI provider configured")
        with patch("kwpilot.research.pipeline.run_course_research", AsyncMock(return_value=failed)):
            result = runner.invoke(cli.app, ["research", "AZ-104", "https://example.com/az-104"])
        assert result.exit_code == 1
        assert "No AI provider configured" in result.output


class TestServe:
    def test_runs_uvicorn(self):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli.app, ["serve", "--port", "9000"])
        assert result.exit_code == 0
        run.assert_called_once_with("kwpilot.main:app", host="127.0.0.1", port=9000, reload=False)
