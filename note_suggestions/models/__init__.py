"""Pydantic models for the suggestion engine."""

from note_suggestions.models.enums import (
    DROP_REASON_STAGE,
    DebugVerbosity,
    DropReason,
    DropStage,
    ExtractorName,
    IntentLabel,
    LineType,
    SuggestionType,
)
from note_suggestions.models.note import (
    EvidenceSpan,
    Line,
    NoteInput,
    Section,
    StructuralFeatures,
)
from note_suggestions.models.suggestion import (
    BugPayload,
    DisplayContext,
    IdeaPayload,
    ProjectUpdatePayload,
    RiskPayload,
    Suggestion,
    SuggestionMetadata,
    SuggestionPayload,
    SuggestionScores,
    payload_body,
)
from note_suggestions.models.run import (
    EngineConfig,
    RunInvariants,
    RunResult,
    ThresholdConfig,
)
from note_suggestions.models.debug import (
    CandidateDebug,
    DebugMeta,
    DebugRun,
    DebugRunSummary,
    ExtractorAttempt,
    NoteSummary,
    RuntimeStats,
    SectionDebug,
    ValidatorOutcome,
)

__all__ = [
    # Enums
    "DROP_REASON_STAGE",
    "DebugVerbosity",
    "DropReason",
    "DropStage",
    "ExtractorName",
    "IntentLabel",
    "LineType",
    "SuggestionType",
    # Note
    "EvidenceSpan",
    "Line",
    "NoteInput",
    "Section",
    "StructuralFeatures",
    # Suggestion
    "BugPayload",
    "DisplayContext",
    "IdeaPayload",
    "ProjectUpdatePayload",
    "RiskPayload",
    "Suggestion",
    "SuggestionMetadata",
    "SuggestionPayload",
    "SuggestionScores",
    "payload_body",
    # Run
    "EngineConfig",
    "RunInvariants",
    "RunResult",
    "ThresholdConfig",
    # Debug
    "CandidateDebug",
    "DebugMeta",
    "DebugRun",
    "DebugRunSummary",
    "ExtractorAttempt",
    "NoteSummary",
    "RuntimeStats",
    "SectionDebug",
    "ValidatorOutcome",
]
