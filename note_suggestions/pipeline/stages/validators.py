"""Stage 4: Validators - Structural, anti-vacuity and grounding gates.

Every candidate passes through V1 -> V2 -> V3 in order; the first failure
drops it with a typed reason. Validators never raise for candidate content.

V1 (structural): required fields present and consistent
V2 (semantic): no banned generic patterns, not management-speak
V3 (grounding): every evidence span is findable in its section
"""

import re
from dataclasses import dataclass
from typing import Optional

import structlog

from note_suggestions.models import DropReason, IntentLabel, Section, Suggestion, ThresholdConfig
from note_suggestions.pipeline.text import non_whitespace_length, normalize_for_comparison

logger = structlog.get_logger(__name__)


# =============================================================================
# Lexicons
# =============================================================================

GENERIC_VERBS = {
    "improve", "optimize", "align", "streamline", "clarify", "enhance", "coordinate",
    "prioritize", "manage", "facilitate", "leverage", "synergize", "enable", "empower",
    "drive", "ensure", "support", "address", "discuss", "review", "assess", "evaluate",
}

GENERIC_NOUNS = {
    "process", "communication", "stakeholders", "priorities", "efficiency", "operations",
    "alignment", "workflows", "collaboration", "productivity", "visibility", "transparency",
    "accountability", "ownership", "outcomes", "deliverables", "resources", "bandwidth",
    "capacity", "synergy", "impact", "value",
}

COMMON_WORDS = {
    "about", "after", "again", "also", "because", "before", "being", "both", "could",
    "does", "doing", "during", "each", "even", "every", "first", "from", "going", "good",
    "have", "having", "here", "into", "just", "know", "last", "like", "make", "many",
    "more", "most", "much", "need", "only", "other", "over", "same", "should", "some",
    "such", "take", "than", "that", "their", "them", "then", "there", "these", "they",
    "thing", "this", "those", "through", "time", "very", "want", "well", "what", "when",
    "where", "which", "while", "will", "with", "would", "your",
}

BANNED_TITLE_PATTERN = re.compile(r"^review:", re.IGNORECASE)
FALLBACK_ID_MARKER = "fallback"
TOKEN_CLEAN_PATTERN = re.compile(r"[^a-z0-9\s]")

MIN_TITLE_CHARS = 4
TITLE_GENERIC_MAX = 0.7
MIN_DOMAIN_NOUNS = 2
PARTIAL_MATCH_CHARS = 50
MIN_GROUNDED_CHARS = 20


@dataclass
class ValidationResult:
    """Outcome of one validator on one candidate."""
    validator: str
    passed: bool
    drop_reason: Optional[DropReason] = None
    reason: Optional[str] = None


def _fail(validator: str, drop_reason: DropReason, reason: str) -> ValidationResult:
    return ValidationResult(validator=validator, passed=False, drop_reason=drop_reason, reason=reason)


# =============================================================================
# Lexical Helpers
# =============================================================================

def tokenize(text: str) -> list[str]:
    cleaned = TOKEN_CLEAN_PATTERN.sub(" ", text.lower())
    return [w for w in cleaned.split() if len(w) > 2]


def generic_ratio(text: str) -> float:
    """Share of tokens that are generic management-speak."""
    tokens = tokenize(text)
    if not tokens:
        return 0.0
    generic = sum(1 for t in tokens if t in GENERIC_VERBS or t in GENERIC_NOUNS)
    return generic / len(tokens)


def domain_nouns(text: str) -> list[str]:
    """Distinct tokens that look domain-specific."""
    seen: list[str] = []
    for token in tokenize(text):
        if token in GENERIC_VERBS or token in GENERIC_NOUNS:
            continue
        if len(token) < 4 or token in COMMON_WORDS:
            continue
        if token not in seen:
            seen.append(token)
    return seen


# =============================================================================
# V1 - Structural
# =============================================================================

def validate_structure(candidate: Suggestion, section: Optional[Section]) -> ValidationResult:
    name = "V1_structural"
    if not candidate.title.strip():
        return _fail(name, DropReason.VALIDATION_V1_MALFORMED, "Title is blank")
    if section is None:
        return _fail(name, DropReason.VALIDATION_V1_MALFORMED, f"Unknown section {candidate.section_id}")
    if candidate.payload.type != candidate.type.value:
        return _fail(
            name,
            DropReason.VALIDATION_V1_MALFORMED,
            f"Payload type {candidate.payload.type} does not match {candidate.type.value}",
        )
    if not candidate.evidence_spans:
        return _fail(name, DropReason.VALIDATION_V1_MALFORMED, "No evidence spans")
    for span in candidate.evidence_spans:
        if not span.text.strip():
            return _fail(name, DropReason.VALIDATION_V1_MALFORMED, "Evidence span text is blank")
        if span.start_line > span.end_line:
            return _fail(name, DropReason.VALIDATION_V1_MALFORMED, "Evidence span is inverted")
        if span.start_line < section.start_line or span.end_line > section.end_line:
            return _fail(
                name,
                DropReason.VALIDATION_V1_MALFORMED,
                f"Evidence lines {span.start_line}-{span.end_line} outside section "
                f"{section.start_line}-{section.end_line}",
            )
    return ValidationResult(validator=name, passed=True)


# =============================================================================
# V2 - Anti-Vacuity
# =============================================================================

def validate_semantics(
    candidate: Suggestion,
    section: Section,
    thresholds: ThresholdConfig,
) -> ValidationResult:
    name = "V2_semantic"
    title = candidate.title.strip()

    if BANNED_TITLE_PATTERN.search(title):
        return _fail(name, DropReason.VALIDATION_V2_BANNED_PATTERN, "Title uses the generic 'Review:' form")
    if FALLBACK_ID_MARKER in candidate.suggestion_id.lower():
        return _fail(name, DropReason.VALIDATION_V2_BANNED_PATTERN, "Candidate is tagged as a fallback")
    if len(title) < MIN_TITLE_CHARS:
        return _fail(name, DropReason.VALIDATION_V2_BANNED_PATTERN, f"Title too short ({len(title)} chars)")
    if not candidate.body.strip():
        return _fail(name, DropReason.VALIDATION_V2_BANNED_PATTERN, "Body is blank")

    ratio = generic_ratio(f"{title} {candidate.body}")
    nouns = domain_nouns(section.raw_text)
    if ratio > thresholds.T_generic and len(nouns) < MIN_DOMAIN_NOUNS:
        return _fail(
            name,
            DropReason.VALIDATION_V2_TOO_GENERIC,
            f"Too generic (ratio: {ratio:.2f}, domain nouns: {len(nouns)})",
        )

    title_ratio = generic_ratio(title)
    if title_ratio > TITLE_GENERIC_MAX:
        return _fail(name, DropReason.VALIDATION_V2_TOO_GENERIC, f"Title too generic (ratio: {title_ratio:.2f})")

    return ValidationResult(validator=name, passed=True)


# =============================================================================
# V3 - Evidence Grounding
# =============================================================================

def is_grounded(span_text: str, section_text: str, min_evidence_chars: int) -> bool:
    """Normalized span is a substring of the normalized section.

    Spans longer than ``min_evidence_chars`` may match on their first 50
    normalized characters instead.
    """
    normalized_section = normalize_for_comparison(section_text)
    normalized_span = normalize_for_comparison(span_text)
    if not normalized_span:
        return False
    if normalized_span in normalized_section:
        return True
    if len(normalized_span) > min_evidence_chars:
        return normalized_span[:PARTIAL_MATCH_CHARS] in normalized_section
    return False


def validate_grounding(
    candidate: Suggestion,
    section: Section,
    thresholds: ThresholdConfig,
) -> ValidationResult:
    name = "V3_grounding"
    for span in candidate.evidence_spans:
        if not is_grounded(span.text, section.raw_text, thresholds.MIN_EVIDENCE_CHARS):
            return _fail(
                name,
                DropReason.VALIDATION_V3_UNGROUNDED,
                f"Evidence at line {span.start_line} does not match section content",
            )

    # Plan changes have no evidence length floor
    if section.intent_label == IntentLabel.PLAN_CHANGE:
        return ValidationResult(validator=name, passed=True)

    section_chars = non_whitespace_length(section.raw_text)
    evidence_chars = sum(non_whitespace_length(s.text) for s in candidate.evidence_spans)
    if section_chars < MIN_GROUNDED_CHARS and evidence_chars < MIN_GROUNDED_CHARS:
        return _fail(
            name,
            DropReason.VALIDATION_V3_EVIDENCE_TOO_WEAK,
            f"Evidence too short (section: {section_chars}, evidence: {evidence_chars}, minimum {MIN_GROUNDED_CHARS})",
        )
    return ValidationResult(validator=name, passed=True)


# =============================================================================
# Chain
# =============================================================================

def run_validators(
    candidate: Suggestion,
    section: Optional[Section],
    thresholds: ThresholdConfig,
) -> tuple[bool, list[ValidationResult]]:
    """Run V1 -> V2 -> V3, stopping at the first failure.

    Returns:
        Tuple of (passed, results so far). The last result carries the
        drop reason when passed is False.
    """
    results = [validate_structure(candidate, section)]
    if not results[-1].passed:
        return False, results

    results.append(validate_semantics(candidate, section, thresholds))
    if not results[-1].passed:
        return False, results

    results.append(validate_grounding(candidate, section, thresholds))
    return results[-1].passed, results
