"""Unit tests for the command-line interface."""

import json

from typer.testing import CliRunner

from note_suggestions import storage
from note_suggestions.cli import app
from note_suggestions.models import SuggestionType
from note_suggestions.pipeline import compute_suggestion_key

runner = CliRunner()


class TestKeyCommand:
    """Tests for `notesug key`."""

    def test_prints_key(self):
        result = runner.invoke(app, [
            "key",
            "--note-id", "note-1",
            "--section-id", "section_001",
            "--type", "idea",
            "--title", "Build User Dashboard!",
        ])
        assert result.exit_code == 0
        expected = compute_suggestion_key("note-1", "section_001", SuggestionType.IDEA, "Build User Dashboard!")
        assert expected in result.stdout


class TestAnalyzeCommand:
    """Tests for `notesug analyze`."""

    def test_writes_result_json(self, tmp_path, timeline_note_text):
        note_path = tmp_path / "standup.md"
        note_path.write_text(timeline_note_text, encoding="utf-8")
        output = tmp_path / "out.json"

        result = runner.invoke(app, ["analyze", str(note_path), "--max", "0", "-o", str(output)])
        assert result.exit_code == 0

        payload = json.loads(output.read_text(encoding="utf-8"))
        assert payload["result"]["note_id"] == "standup"
        assert len(payload["result"]["final_suggestions"]) == 2
        assert "debug_run" not in payload

    def test_debug_run_included(self, tmp_path, timeline_note_text):
        note_path = tmp_path / "standup.md"
        note_path.write_text(timeline_note_text, encoding="utf-8")
        output = tmp_path / "out.json"

        result = runner.invoke(app, [
            "analyze", str(note_path),
            "--note-id", "note-42",
            "--verbosity", "redacted",
            "-o", str(output),
        ])
        assert result.exit_code == 0

        payload = json.loads(output.read_text(encoding="utf-8"))
        assert payload["debug_run"]["meta"]["run_id"] == payload["result"]["run_id"]
        assert payload["debug_run"]["note_summary"]["note_id"] == "note-42"

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["analyze", str(tmp_path / "nope.md")])
        assert result.exit_code != 0


class TestInfoCommand:
    """Tests for `notesug info`."""

    def test_shows_version(self):
        from note_suggestions import __version__

        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestRunsCommand:
    """Tests for `notesug runs`."""

    def test_empty_store(self, tmp_path, monkeypatch):
        monkeypatch.setattr(storage, "get_store_dir", lambda store_dir=None: tmp_path)
        result = runner.invoke(app, ["runs"])
        assert result.exit_code == 0
        assert "No stored debug runs" in result.stdout
