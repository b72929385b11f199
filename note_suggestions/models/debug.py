"""Debug run models: a parallel trace of every section and candidate.

A DebugRun shares its run_id with the RunResult it was recorded alongside.
In REDACTED mode text-bearing fields only ever hold redacted previews.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from note_suggestions.models.enums import (
    DebugVerbosity,
    DropReason,
    DropStage,
    ExtractorName,
    IntentLabel,
    SuggestionType,
)
from note_suggestions.models.suggestion import SuggestionScores


class DebugMeta(BaseModel):
    run_id: str
    generator_version: str
    verbosity: DebugVerbosity
    created_at: datetime


class NoteSummary(BaseModel):
    note_id: str
    note_hash: str
    line_count: int = Field(ge=0)
    char_count: int = Field(ge=0)
    text_preview: Optional[str] = Field(None, description="Redacted preview (REDACTED only)")
    full_text: Optional[str] = Field(None, description="Complete note text (FULL_TEXT only)")


class ValidatorOutcome(BaseModel):
    validator: str = Field(description="V1_structural, V2_semantic or V3_grounding")
    passed: bool
    reason: Optional[str] = None


class ExtractorAttempt(BaseModel):
    extractor: ExtractorName
    emitted: int = Field(default=0, ge=0)
    error: Optional[str] = Field(None, description="Exception type when the extractor failed")
    trace: dict[str, Any] = Field(default_factory=dict, description="Counters and line choices the extractor reported")


class CandidateDebug(BaseModel):
    """Journey of one candidate from emission to final decision."""

    suggestion_id: str
    type: SuggestionType
    title_preview: str
    source_extractor: ExtractorName
    signal_family: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    evidence_previews: list[str] = Field(default_factory=list)
    evidence_lines: list[tuple[int, int]] = Field(default_factory=list)
    validators: list[ValidatorOutcome] = Field(default_factory=list)
    scores: Optional[SuggestionScores] = None
    suggestion_key: Optional[str] = None
    drop_stage: Optional[DropStage] = None
    drop_reason: Optional[DropReason] = None
    drop_detail: Optional[str] = None
    emitted: bool = False


class SectionDebug(BaseModel):
    """Journey of one section: classification, extraction and candidates."""

    section_id: str
    start_line: int
    end_line: int
    num_lines: int = 0
    heading_preview: Optional[str] = None
    text_preview: Optional[str] = None
    full_text: Optional[str] = None
    intent_label: Optional[IntentLabel] = None
    intent_score: float = 0.0
    type_label: Optional[SuggestionType] = None
    type_score: float = 0.0
    is_actionable: bool = False
    actionable_signal: float = 0.0
    out_of_scope_signal: float = 0.0
    actionability_reason: str = ""
    extractor_attempts: list[ExtractorAttempt] = Field(default_factory=list)
    candidates: list[CandidateDebug] = Field(default_factory=list)
    drop_stage: Optional[DropStage] = None
    drop_reason: Optional[DropReason] = None
    drop_detail: Optional[str] = None
    emitted_count: int = 0


class RuntimeStats(BaseModel):
    total_ms: float = 0.0
    stage_timings_ms: dict[str, float] = Field(default_factory=dict)
    section_count: int = 0
    actionable_section_count: int = 0
    candidate_count: int = 0
    emitted_count: int = 0


class DebugRunSummary(BaseModel):
    """Aggregate drop histograms for quick inspection."""

    drops_by_stage: dict[str, int] = Field(default_factory=dict)
    drops_by_reason: dict[str, int] = Field(default_factory=dict)
    top_reasons: list[tuple[str, int]] = Field(default_factory=list)


class DebugRun(BaseModel):
    """Size-bounded debug artifact for one run."""

    meta: DebugMeta
    note_summary: NoteSummary
    sections: list[SectionDebug] = Field(default_factory=list)
    runtime_stats: RuntimeStats = Field(default_factory=RuntimeStats)
    config: dict = Field(default_factory=dict)
    summary: DebugRunSummary = Field(default_factory=DebugRunSummary)
    payload_bytes: int = Field(default=0, ge=0)
    storage_skipped_reason: Optional[str] = None
