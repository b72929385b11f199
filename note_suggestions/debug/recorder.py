"""Debug recorder: a read-only observer of one pipeline run.

The orchestrator calls the hooks below as sections and candidates move
through the stages. The recorder copies what it is shown into debug
models and never hands anything back, so a run with debug enabled
produces the same final suggestions as a run without it.
"""

from collections import Counter
from datetime import datetime
from typing import Optional

import structlog

from note_suggestions.debug.redaction import preview
from note_suggestions.models import (
    DROP_REASON_STAGE,
    CandidateDebug,
    DebugMeta,
    DebugRun,
    DebugRunSummary,
    DebugVerbosity,
    DropReason,
    EngineConfig,
    ExtractorAttempt,
    ExtractorName,
    NoteInput,
    NoteSummary,
    RuntimeStats,
    Section,
    SectionDebug,
    Suggestion,
    SuggestionScores,
    ValidatorOutcome,
)

logger = structlog.get_logger(__name__)

GENERATOR_VERSION = "rules-v2.1"
TOP_REASONS_LIMIT = 5


def resolve_debug_verbosity(
    requested: DebugVerbosity,
    allow_full_text: bool,
    enabled: bool = True,
) -> DebugVerbosity:
    """Effective verbosity; FULL_TEXT needs both the request and the non-production flag."""
    if not enabled or requested == DebugVerbosity.OFF:
        return DebugVerbosity.OFF
    if requested == DebugVerbosity.FULL_TEXT and allow_full_text:
        return DebugVerbosity.FULL_TEXT
    return DebugVerbosity.REDACTED


def measure_payload(debug_run: DebugRun) -> int:
    """UTF-8 size of the serialized run."""
    return len(debug_run.model_dump_json().encode("utf-8"))


class DebugRecorder:
    """Collects a DebugRun alongside a pipeline run."""

    def __init__(self, note: NoteInput, note_hash: str, verbosity: DebugVerbosity, max_bytes: int):
        self.note = note
        self.note_hash = note_hash
        self.verbosity = verbosity
        self.max_bytes = max_bytes
        self._sections: dict[str, SectionDebug] = {}
        self._candidates: dict[str, CandidateDebug] = {}
        self._stage_timings: dict[str, float] = {}
        self._line_count = 0

    @classmethod
    def create(cls, config: EngineConfig, note: NoteInput, note_hash: str) -> Optional["DebugRecorder"]:
        """Build a recorder, or None when debug is off."""
        verbosity = resolve_debug_verbosity(
            config.debug_verbosity,
            config.allow_full_text_debug,
            enabled=config.enable_debug,
        )
        if verbosity == DebugVerbosity.OFF:
            return None
        return cls(note, note_hash, verbosity, config.debug_max_bytes)

    @property
    def full_text(self) -> bool:
        return self.verbosity == DebugVerbosity.FULL_TEXT

    def _text(self, text: Optional[str]) -> Optional[str]:
        """Full text in FULL_TEXT mode, otherwise a redacted preview."""
        if text is None:
            return None
        return text if self.full_text else preview(text)

    # =========================================================================
    # Hooks
    # =========================================================================

    def record_line_count(self, line_count: int) -> None:
        self._line_count = line_count

    def record_section(self, section: Section) -> None:
        self._sections[section.section_id] = SectionDebug(
            section_id=section.section_id,
            start_line=section.start_line,
            end_line=section.end_line,
            num_lines=section.structural_features.num_lines,
            heading_preview=preview(section.heading_text),
            text_preview=preview(section.raw_text),
            full_text=section.raw_text if self.full_text else None,
        )

    def record_classification(self, section: Section) -> None:
        debug = self._sections.get(section.section_id)
        if debug is None:
            return
        debug.intent_label = section.intent_label
        debug.intent_score = section.intent_score
        debug.type_label = section.type_label
        debug.type_score = section.type_score
        debug.is_actionable = section.is_actionable
        debug.actionable_signal = section.actionable_signal
        debug.out_of_scope_signal = section.out_of_scope_signal
        debug.actionability_reason = section.actionability_reason

    def record_extractor_attempt(
        self,
        section_id: str,
        extractor: ExtractorName,
        emitted: int,
        error: Optional[str] = None,
        trace: Optional[dict] = None,
    ) -> None:
        debug = self._sections.get(section_id)
        if debug is not None:
            debug.extractor_attempts.append(
                ExtractorAttempt(extractor=extractor, emitted=emitted, error=error, trace=trace or {})
            )

    def record_candidate(self, candidate: Suggestion) -> None:
        entry = CandidateDebug(
            suggestion_id=candidate.suggestion_id,
            type=candidate.type,
            title_preview=self._text(candidate.title),
            source_extractor=candidate.metadata.source_extractor,
            signal_family=candidate.metadata.signal_family,
            confidence=candidate.metadata.confidence,
            evidence_previews=[self._text(span.text) for span in candidate.evidence_spans],
            evidence_lines=[(span.start_line, span.end_line) for span in candidate.evidence_spans],
        )
        self._candidates[candidate.suggestion_id] = entry
        section = self._sections.get(candidate.section_id)
        if section is not None:
            section.candidates.append(entry)

    def record_validation(self, suggestion_id: str, outcomes: list[ValidatorOutcome]) -> None:
        entry = self._candidates.get(suggestion_id)
        if entry is not None:
            entry.validators = list(outcomes)

    def record_scores(self, suggestion_id: str, scores: SuggestionScores) -> None:
        entry = self._candidates.get(suggestion_id)
        if entry is not None:
            entry.scores = scores.model_copy()

    def record_key(self, suggestion_id: str, suggestion_key: str) -> None:
        entry = self._candidates.get(suggestion_id)
        if entry is not None:
            entry.suggestion_key = suggestion_key

    def drop_section(self, section_id: str, reason: DropReason, detail: str = "") -> None:
        debug = self._sections.get(section_id)
        if debug is None:
            return
        debug.drop_stage = DROP_REASON_STAGE[reason]
        debug.drop_reason = reason
        debug.drop_detail = detail or None

    def drop_candidate(self, suggestion_id: str, reason: DropReason, detail: str = "") -> None:
        entry = self._candidates.get(suggestion_id)
        if entry is None:
            return
        entry.drop_stage = DROP_REASON_STAGE[reason]
        entry.drop_reason = reason
        entry.drop_detail = detail or None

    def mark_emitted(self, suggestion: Suggestion) -> None:
        entry = self._candidates.get(suggestion.suggestion_id)
        if entry is None:
            return
        entry.emitted = True
        entry.suggestion_key = suggestion.suggestion_key
        section = self._sections.get(suggestion.section_id)
        if section is not None:
            section.emitted_count += 1

    def record_stage_timing(self, stage: str, duration_ms: float) -> None:
        self._stage_timings[stage] = round(duration_ms, 3)

    # =========================================================================
    # Build
    # =========================================================================

    def _summary(self) -> DebugRunSummary:
        by_stage: Counter = Counter()
        by_reason: Counter = Counter()
        for section in self._sections.values():
            if section.drop_reason is not None:
                by_stage[section.drop_stage.value] += 1
                by_reason[section.drop_reason.value] += 1
        for entry in self._candidates.values():
            if entry.drop_reason is not None:
                by_stage[entry.drop_stage.value] += 1
                by_reason[entry.drop_reason.value] += 1
        top = sorted(by_reason.items(), key=lambda item: (-item[1], item[0]))[:TOP_REASONS_LIMIT]
        return DebugRunSummary(
            drops_by_stage=dict(by_stage),
            drops_by_reason=dict(by_reason),
            top_reasons=top,
        )

    def build(
        self,
        run_id: str,
        created_at: datetime,
        total_ms: float,
        config: EngineConfig,
    ) -> DebugRun:
        """Assemble the DebugRun and apply the size ceiling."""
        text = self.note.raw_text
        sections = list(self._sections.values())
        debug_run = DebugRun(
            meta=DebugMeta(
                run_id=run_id,
                generator_version=GENERATOR_VERSION,
                verbosity=self.verbosity,
                created_at=created_at,
            ),
            note_summary=NoteSummary(
                note_id=self.note.note_id,
                note_hash=self.note_hash,
                line_count=self._line_count,
                char_count=len(text),
                text_preview=None if self.full_text else preview(text),
                full_text=text if self.full_text else None,
            ),
            sections=sections,
            runtime_stats=RuntimeStats(
                total_ms=round(total_ms, 3),
                stage_timings_ms=dict(self._stage_timings),
                section_count=len(sections),
                actionable_section_count=sum(1 for s in sections if s.is_actionable),
                candidate_count=len(self._candidates),
                emitted_count=sum(1 for c in self._candidates.values() if c.emitted),
            ),
            config=config.model_dump(mode="json"),
            summary=self._summary(),
        )

        size = measure_payload(debug_run)
        debug_run.payload_bytes = size
        if size > self.max_bytes:
            debug_run.storage_skipped_reason = f"payload_too_large:{size}>{self.max_bytes}"
            logger.warning(
                "debug_payload_too_large",
                run_id=run_id,
                payload_bytes=size,
                limit=self.max_bytes,
            )
        return debug_run
