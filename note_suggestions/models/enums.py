"""Enumeration types for the suggestion engine models."""

from enum import Enum


class SuggestionType(str, Enum):
    """Kinds of suggestion the engine can emit."""

    IDEA = "idea"
    PROJECT_UPDATE = "project_update"
    RISK = "risk"
    BUG = "bug"


class LineType(str, Enum):
    """Structural type of a single note line."""

    HEADING = "heading"
    LIST_ITEM = "list_item"
    PARAGRAPH = "paragraph"
    CODE = "code"
    QUOTE = "quote"
    BLANK = "blank"


class IntentLabel(str, Enum):
    """Section-level intent assigned by the classifier."""

    PLAN_CHANGE = "plan_change"
    NEW_WORKSTREAM = "new_workstream"
    DISCUSSION = "discussion"
    OUT_OF_SCOPE = "out_of_scope"
    GENERIC_HYGIENE = "generic_hygiene"


class ExtractorName(str, Enum):
    """Candidate extractors, in the order they run."""

    SIGNAL_SEEDING = "signal_seeding"
    IDEA_SEMANTIC = "idea_semantic"
    TIMELINE_MERGE = "timeline_merge"


class DropStage(str, Enum):
    """Where a section or candidate left the pipeline."""

    SEGMENTATION = "segmentation"
    CLASSIFICATION = "classification"
    EXTRACTION = "extraction"
    VALIDATION = "validation"
    THRESHOLD = "threshold"
    CONSOLIDATION = "consolidation"
    DEDUPE = "dedupe"
    AGGREGATION = "aggregation"


class DropReason(str, Enum):
    """Why a section or candidate left the pipeline."""

    NOT_ACTIONABLE = "not_actionable"
    SUPPRESSED_SECTION = "suppressed_section"
    TOO_LARGE = "too_large"
    NO_CANDIDATES = "no_candidates"
    VALIDATION_V1_MALFORMED = "validation_v1_malformed"
    VALIDATION_V2_BANNED_PATTERN = "validation_v2_banned_pattern"
    VALIDATION_V2_TOO_GENERIC = "validation_v2_too_generic"
    VALIDATION_V3_UNGROUNDED = "validation_v3_ungrounded"
    VALIDATION_V3_EVIDENCE_TOO_WEAK = "validation_v3_evidence_too_weak"
    LOW_RELEVANCE = "low_relevance"
    CONSOLIDATED = "consolidated"
    DUPLICATE_KEY = "duplicate_key"
    DUPLICATE_EVIDENCE = "duplicate_evidence"
    TRIMMED_TO_CAP = "trimmed_to_cap"
    INTERNAL_ERROR = "internal_error"


# Each reason belongs to exactly one stage
DROP_REASON_STAGE: dict[DropReason, DropStage] = {
    DropReason.TOO_LARGE: DropStage.SEGMENTATION,
    DropReason.NOT_ACTIONABLE: DropStage.CLASSIFICATION,
    DropReason.SUPPRESSED_SECTION: DropStage.CLASSIFICATION,
    DropReason.NO_CANDIDATES: DropStage.EXTRACTION,
    DropReason.INTERNAL_ERROR: DropStage.EXTRACTION,
    DropReason.VALIDATION_V1_MALFORMED: DropStage.VALIDATION,
    DropReason.VALIDATION_V2_BANNED_PATTERN: DropStage.VALIDATION,
    DropReason.VALIDATION_V2_TOO_GENERIC: DropStage.VALIDATION,
    DropReason.VALIDATION_V3_UNGROUNDED: DropStage.VALIDATION,
    DropReason.VALIDATION_V3_EVIDENCE_TOO_WEAK: DropStage.VALIDATION,
    DropReason.LOW_RELEVANCE: DropStage.THRESHOLD,
    DropReason.CONSOLIDATED: DropStage.CONSOLIDATION,
    DropReason.DUPLICATE_KEY: DropStage.DEDUPE,
    DropReason.DUPLICATE_EVIDENCE: DropStage.DEDUPE,
    DropReason.TRIMMED_TO_CAP: DropStage.AGGREGATION,
}


class DebugVerbosity(str, Enum):
    """How much detail a debug run carries."""

    OFF = "off"
    REDACTED = "redacted"
    FULL_TEXT = "full_text"
