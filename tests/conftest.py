"""Pytest configuration and fixtures."""

from typing import Callable, Optional

import pytest

from note_suggestions.models import (
    DisplayContext,
    EngineConfig,
    EvidenceSpan,
    ExtractorName,
    IdeaPayload,
    NoteInput,
    Section,
    Suggestion,
    SuggestionMetadata,
    SuggestionScores,
    SuggestionType,
)
from note_suggestions.pipeline.context import RunContext
from note_suggestions.pipeline.stages.classifier import classify_sections
from note_suggestions.pipeline.stages.preprocessor import preprocess_note
from note_suggestions.pipeline.text import compute_note_hash


@pytest.fixture
def timeline_note_text() -> str:
    """Timeline section mixing a schedule with a data-handling risk."""
    return (
        "# Project Status\n"
        "\n"
        "## Implementation Timeline\n"
        "\n"
        "- Immediate focus: Ham Light deployment (3-month window, target January)\n"
        "- Backend services ready; frontend integration in progress\n"
        "- Security considerations: Database logging includes user IDs which raises privacy and PII risk\n"
        "- Need to mask user IDs before logging goes live\n"
    )


@pytest.fixture
def idea_note_text() -> str:
    return "We plan to use a scoring framework to automate prioritization."


@pytest.fixture
def signal_note_text() -> str:
    """Three unrelated signal bullets under one heading."""
    return (
        "## Customer Feedback\n"
        "\n"
        "- Customers need bulk export for renewal discussions\n"
        "- Checkout page is broken on Safari\n"
        "- We are pushing the beta release to next sprint\n"
    )


@pytest.fixture
def mixed_note_text(timeline_note_text: str, signal_note_text: str) -> str:
    """A longer note with several independent sections."""
    return (
        timeline_note_text
        + "\n"
        + signal_note_text
        + "\n"
        "## Logistics\n"
        "\n"
        "- Send the recap email on Monday\n"
        "- Slack the agenda next week\n"
    )


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def make_note() -> Callable[..., NoteInput]:
    def _make(text: str, note_id: str = "note-1") -> NoteInput:
        return NoteInput(note_id=note_id, raw_text=text)
    return _make


@pytest.fixture
def make_context(engine_config: EngineConfig) -> Callable[..., RunContext]:
    """Fresh run context for calling stages directly."""
    def _make(
        note_id: str = "note-1",
        text: str = "",
        config: Optional[EngineConfig] = None,
    ) -> RunContext:
        return RunContext.create(config or engine_config, note_id, compute_note_hash(text))
    return _make


@pytest.fixture
def sections_for(make_note, make_context) -> Callable[..., tuple[list[Section], RunContext]]:
    """Preprocess (and optionally classify) a note, returning its sections and context."""
    def _sections(text: str, classify: bool = True) -> tuple[list[Section], RunContext]:
        note = make_note(text)
        ctx = make_context(note.note_id, text)
        sections = preprocess_note(note, ctx).sections
        if classify:
            sections = classify_sections(sections, ctx)
        return sections, ctx
    return _sections


@pytest.fixture
def make_suggestion() -> Callable[..., Suggestion]:
    """Build an idea candidate against a section, overriding any field."""
    def _make(
        section: Section,
        title: str = "Bulk export for finance team",
        span_text: Optional[str] = None,
        start_line: Optional[int] = None,
        suggestion_id: str = "sug_abcd1234_001",
        overall: float = 0.0,
        suggestion_type: SuggestionType = SuggestionType.IDEA,
    ) -> Suggestion:
        first = section.body_lines[0]
        text = span_text if span_text is not None else first.text.lstrip("-* ").strip()
        line = start_line if start_line is not None else first.index
        return Suggestion(
            suggestion_id=suggestion_id,
            note_id=section.note_id,
            section_id=section.section_id,
            type=suggestion_type,
            title=title,
            payload=IdeaPayload(description=text),
            evidence_spans=[EvidenceSpan(start_line=line, end_line=line, text=text)],
            scores=SuggestionScores(overall=overall),
            metadata=SuggestionMetadata(
                source_extractor=ExtractorName.IDEA_SEMANTIC,
                confidence=0.7,
            ),
            display_context=DisplayContext(
                title=title,
                body=text,
                source_section_id=section.section_id,
            ),
        )
    return _make
