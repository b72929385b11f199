"""Unit tests for debug run storage."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from note_suggestions import storage
from note_suggestions.models import EngineConfig
from note_suggestions.pipeline import run_pipeline

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def debug_run_for(timeline_note_text, make_note):
    def _make(**overrides):
        config = EngineConfig(enable_debug=True, **overrides)
        _, debug_run = run_pipeline(make_note(timeline_note_text), config)
        return debug_run
    return _make


class TestSaveDebugRun:
    """Tests for persisting debug runs."""

    def test_store_and_load(self, tmp_path, debug_run_for):
        debug_run = debug_run_for()
        outcome = asyncio.run(storage.save_debug_run(
            "note-1", debug_run, store_dir=tmp_path, now=NOW, rate_limit_seconds=3600,
        ))
        assert outcome.stored
        assert outcome.path == tmp_path / debug_run.meta.run_id / "debug_run.json"

        loaded = asyncio.run(storage.load_debug_run(debug_run.meta.run_id, store_dir=tmp_path))
        assert loaded is not None
        assert loaded.meta.run_id == debug_run.meta.run_id
        assert len(loaded.sections) == len(debug_run.sections)

    def test_rate_limited_within_window(self, tmp_path, debug_run_for):
        asyncio.run(storage.save_debug_run(
            "note-1", debug_run_for(), store_dir=tmp_path, now=NOW, rate_limit_seconds=3600,
        ))
        outcome = asyncio.run(storage.save_debug_run(
            "note-1", debug_run_for(), store_dir=tmp_path,
            now=NOW + timedelta(minutes=10), rate_limit_seconds=3600,
        ))
        assert not outcome.stored
        assert outcome.reason == "rate_limited"
        assert "50 minute" in outcome.message

    def test_other_note_not_rate_limited(self, tmp_path, debug_run_for):
        asyncio.run(storage.save_debug_run(
            "note-1", debug_run_for(), store_dir=tmp_path, now=NOW, rate_limit_seconds=3600,
        ))
        outcome = asyncio.run(storage.save_debug_run(
            "note-2", debug_run_for(), store_dir=tmp_path, now=NOW, rate_limit_seconds=3600,
        ))
        assert outcome.stored

    def test_allowed_after_window(self, tmp_path, debug_run_for):
        asyncio.run(storage.save_debug_run(
            "note-1", debug_run_for(), store_dir=tmp_path, now=NOW, rate_limit_seconds=3600,
        ))
        outcome = asyncio.run(storage.save_debug_run(
            "note-1", debug_run_for(), store_dir=tmp_path,
            now=NOW + timedelta(hours=2), rate_limit_seconds=3600,
        ))
        assert outcome.stored

    def test_oversized_never_written(self, tmp_path, debug_run_for):
        debug_run = debug_run_for(debug_max_bytes=1)
        outcome = asyncio.run(storage.save_debug_run(
            "note-1", debug_run, store_dir=tmp_path, now=NOW, rate_limit_seconds=3600,
        ))
        assert not outcome.stored
        assert outcome.reason == "payload_too_large"
        assert list(tmp_path.iterdir()) == []


class TestListAndCleanup:
    """Tests for listing, deleting and retention."""

    def test_list_newest_first(self, tmp_path, debug_run_for):
        older, newer = debug_run_for(), debug_run_for()
        asyncio.run(storage.save_debug_run("note-1", older, store_dir=tmp_path, now=NOW, rate_limit_seconds=0))
        asyncio.run(storage.save_debug_run(
            "note-1", newer, store_dir=tmp_path, now=NOW + timedelta(minutes=5), rate_limit_seconds=0,
        ))
        runs = asyncio.run(storage.list_debug_runs(note_id="note-1", store_dir=tmp_path))
        assert [r["run_id"] for r in runs] == [newer.meta.run_id, older.meta.run_id]

    def test_list_missing_store(self, tmp_path):
        assert asyncio.run(storage.list_debug_runs(store_dir=tmp_path / "missing")) == []

    def test_cleanup_expired(self, tmp_path, debug_run_for):
        old, fresh = debug_run_for(), debug_run_for()
        asyncio.run(storage.save_debug_run(
            "note-1", old, store_dir=tmp_path, now=NOW - timedelta(hours=100), rate_limit_seconds=0,
        ))
        asyncio.run(storage.save_debug_run("note-2", fresh, store_dir=tmp_path, now=NOW, rate_limit_seconds=0))

        removed = asyncio.run(storage.cleanup_expired(now=NOW, store_dir=tmp_path, retention_hours=72))
        assert removed == 1
        assert asyncio.run(storage.load_debug_run(old.meta.run_id, store_dir=tmp_path)) is None
        assert asyncio.run(storage.load_debug_run(fresh.meta.run_id, store_dir=tmp_path)) is not None

    def test_delete(self, tmp_path, debug_run_for):
        debug_run = debug_run_for()
        asyncio.run(storage.save_debug_run("note-1", debug_run, store_dir=tmp_path, now=NOW, rate_limit_seconds=0))
        assert asyncio.run(storage.delete_debug_run(debug_run.meta.run_id, store_dir=tmp_path))
        assert not asyncio.run(storage.delete_debug_run(debug_run.meta.run_id, store_dir=tmp_path))
