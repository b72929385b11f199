"""Stage 6: Dedupe - Stable suggestion keys and duplicate removal.

The suggestion key is the external contract persistence uses to keep
apply/dismiss decisions stable across regenerations: equal
(note_id, section_id, type, normalized title) tuples always give equal keys.
"""

import hashlib
from dataclasses import dataclass
from typing import Optional

import structlog
from rapidfuzz import fuzz

from note_suggestions.models import DropReason, Suggestion, SuggestionType
from note_suggestions.pipeline.text import normalize_for_comparison

logger = structlog.get_logger(__name__)

TITLE_KEY_MAX_CHARS = 120
FUZZY_TITLE_THRESHOLD = 92


def normalize_title(title: str) -> str:
    """Lower-case, strip punctuation, collapse whitespace, cap length."""
    return normalize_for_comparison(title)[:TITLE_KEY_MAX_CHARS].strip()


def compute_suggestion_key(
    note_id: str,
    section_id: str,
    suggestion_type: SuggestionType | str,
    title: str,
) -> str:
    type_value = suggestion_type.value if isinstance(suggestion_type, SuggestionType) else str(suggestion_type)
    material = "|".join([note_id, section_id, type_value, normalize_title(title)])
    return hashlib.sha1(material.encode("utf-8")).hexdigest()


def with_key(candidate: Suggestion) -> Suggestion:
    key = compute_suggestion_key(candidate.note_id, candidate.section_id, candidate.type, candidate.title)
    return candidate.model_copy(update={"suggestion_key": key})


def _evidence_signature(candidate: Suggestion) -> str:
    return normalize_for_comparison(" ".join(span.text for span in candidate.evidence_spans))


@dataclass
class DuplicateDrop:
    candidate: Suggestion
    reason: DropReason
    detail: str


def dedupe_candidates(candidates: list[Suggestion]) -> tuple[list[Suggestion], list[DuplicateDrop]]:
    """Keep the first of each duplicate group.

    Candidates must already be keyed and ordered best-first, so the
    survivor of each group is the highest scored.
    """
    kept: list[Suggestion] = []
    dropped: list[DuplicateDrop] = []
    seen_keys: dict[str, str] = {}
    seen_evidence: dict[str, str] = {}

    for candidate in candidates:
        duplicate = _find_duplicate(candidate, kept, seen_keys, seen_evidence)
        if duplicate is not None:
            dropped.append(DuplicateDrop(candidate, *duplicate))
            continue
        kept.append(candidate)
        seen_keys[candidate.suggestion_key] = candidate.suggestion_id
        signature = _evidence_signature(candidate)
        if signature:
            seen_evidence[signature] = candidate.suggestion_id

    if dropped:
        logger.debug("dedupe_complete", kept=len(kept), dropped=len(dropped))
    return kept, dropped


def _find_duplicate(
    candidate: Suggestion,
    kept: list[Suggestion],
    seen_keys: dict[str, str],
    seen_evidence: dict[str, str],
) -> Optional[tuple[DropReason, str]]:
    if candidate.suggestion_key in seen_keys:
        return DropReason.DUPLICATE_KEY, f"same key as {seen_keys[candidate.suggestion_key]}"

    signature = _evidence_signature(candidate)
    if signature and signature in seen_evidence:
        return DropReason.DUPLICATE_EVIDENCE, f"same evidence as {seen_evidence[signature]}"

    title = normalize_title(candidate.title)
    for other in kept:
        if other.section_id != candidate.section_id or other.type != candidate.type:
            continue
        similarity = fuzz.ratio(title, normalize_title(other.title))
        if similarity >= FUZZY_TITLE_THRESHOLD:
            return DropReason.DUPLICATE_KEY, f"title {similarity:.0f}% similar to {other.suggestion_id}"
    return None
