"""Unit tests for Pydantic models."""

import pytest
from pydantic import ValidationError

from note_suggestions.config.settings import Settings
from note_suggestions.models import (
    DROP_REASON_STAGE,
    DebugVerbosity,
    DropReason,
    DropStage,
    EngineConfig,
    EvidenceSpan,
    NoteInput,
    ProjectUpdatePayload,
    RiskPayload,
    Suggestion,
    payload_body,
)


class TestNoteInput:
    """Tests for NoteInput model."""

    def test_frozen(self):
        note = NoteInput(note_id="note-1", raw_text="text")
        with pytest.raises(ValidationError):
            note.raw_text = "changed"

    def test_occurred_at_optional(self):
        assert NoteInput(note_id="note-1", raw_text="").occurred_at is None


class TestPayloads:
    """Tests for the tagged payload union."""

    def test_discriminator_selects_variant(self):
        data = {
            "suggestion_id": "sug_abcd1234_001",
            "note_id": "note-1",
            "section_id": "section_001",
            "type": "risk",
            "title": "Risk: Logging",
            "payload": {"type": "risk", "description": "Logs hold user IDs"},
            "evidence_spans": [{"start_line": 2, "end_line": 2, "text": "Logs hold user IDs"}],
            "metadata": {"source_extractor": "timeline_merge", "confidence": 0.7},
            "display_context": {"title": "Risk: Logging", "body": "Logs hold user IDs", "source_section_id": "section_001"},
        }
        suggestion = Suggestion.model_validate(data)
        assert isinstance(suggestion.payload, RiskPayload)
        assert suggestion.body == "Logs hold user IDs"

    def test_payload_body(self):
        assert payload_body(ProjectUpdatePayload(after_description="Beta moves to May")) == "Beta moves to May"

    def test_negative_line_rejected(self):
        with pytest.raises(ValidationError):
            EvidenceSpan(start_line=-1, end_line=0, text="x")


class TestEngineConfig:
    """Tests for run configuration."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.max_suggestions_per_note == 5
        assert config.thresholds.T_overall_min == 0.65
        assert config.thresholds.MIN_EVIDENCE_CHARS == 120
        assert config.debug_verbosity == DebugVerbosity.REDACTED
        assert not config.enable_debug

    def test_negative_cap_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(max_suggestions_per_note=-1)

    def test_from_settings(self):
        settings = Settings(max_suggestions_per_note=3, t_generic=0.4, debug_verbosity="FULL_TEXT")
        config = EngineConfig.from_settings(settings)
        assert config.max_suggestions_per_note == 3
        assert config.thresholds.T_generic == 0.4
        assert config.debug_verbosity == DebugVerbosity.FULL_TEXT


class TestDropReasons:
    """Tests for the reason-to-stage table."""

    def test_every_reason_has_a_stage(self):
        assert set(DROP_REASON_STAGE) == set(DropReason)

    def test_examples(self):
        assert DROP_REASON_STAGE[DropReason.TRIMMED_TO_CAP] == DropStage.AGGREGATION
        assert DROP_REASON_STAGE[DropReason.LOW_RELEVANCE] == DropStage.THRESHOLD
        assert DROP_REASON_STAGE[DropReason.CONSOLIDATED] == DropStage.CONSOLIDATION
