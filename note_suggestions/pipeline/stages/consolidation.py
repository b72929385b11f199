"""Stage 5b: Consolidation - One idea per structured list section.

A headed list section can yield one idea per bullet. When every surviving
candidate of such a section is an idea, the fragments collapse into a
single idea titled by the section heading, carrying the merged evidence.

A section is consolidated only when ALL of these hold:
- more than one surviving candidate, all of type idea
- a usable heading (level <= 3, not generic)
- at least 3 list items
- no timeline heading and no delta/timeline token in the body

Risks and project updates are never consolidated.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import structlog

from note_suggestions.models import (
    DisplayContext,
    EvidenceSpan,
    IdeaPayload,
    Section,
    Suggestion,
    SuggestionType,
)
from note_suggestions.pipeline.context import RunContext
from note_suggestions.pipeline.stages.aggregation import rank_key
from note_suggestions.pipeline.stages.idea_extraction import usable_heading
from note_suggestions.pipeline.stages.timeline_merge import is_timeline_section
from note_suggestions.pipeline.stages.validators import ValidationResult, run_validators

logger = structlog.get_logger(__name__)


# =============================================================================
# Delta Signals
# =============================================================================

DELTA_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"\d+-(?:week|day|month|year|sprint)s?",
        r"\d+\s+(?:week|day|month|year|sprint)s?",
        r"from\s+\d[-–]\w+\s+to\s+\d[-–]\w+",
        r"\d+[-–]\w+\s+to\s+\d+[-–]\w+",
        r"extend(?:ed|ing)?\s+from\s+",
        r"delayed?\s+(?:to|until|by)\s+",
        r"pushed?\s+(?:to|until)\s+",
        r"\d+(?:st|nd|rd|th)\s*[→\-–]\s*\d+(?:st|nd|rd|th)",
        r"Q[1-4]\s+\d{4}",
        r"20\d\d[-–]20\d\d",
    ]
]

MIN_LIST_ITEMS = 3
MAX_MERGED_SPANS = 5
MAX_BODY_SPANS = 4
BODY_MAX_CHARS = 320

LIST_MARKER = re.compile(r"^(?:[\s\-*+]+|\d+\.\s*)")


def has_delta_signal(raw_text: str) -> bool:
    return any(pattern.search(raw_text) for pattern in DELTA_PATTERNS)


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class ConsolidatedGroup:
    """One section whose fragments were merged."""
    section_id: str
    consolidated: Suggestion
    fragments: list[Suggestion]
    validation: list[ValidationResult] = field(default_factory=list)


@dataclass
class ConsolidationResult:
    candidates: list[Suggestion]
    groups: list[ConsolidatedGroup] = field(default_factory=list)


# =============================================================================
# Merge Helpers
# =============================================================================

def consolidation_heading(section: Optional[Section], group: list[Suggestion]) -> Optional[str]:
    """The title a group would be merged under, or None to leave it alone."""
    if len(group) <= 1 or section is None:
        return None
    if any(c.type != SuggestionType.IDEA for c in group):
        return None
    if section.structural_features.num_list_items < MIN_LIST_ITEMS:
        return None
    if is_timeline_section(section) or has_delta_signal(section.raw_text):
        return None
    heading = usable_heading(section)
    if heading is None:
        return None
    # Folded headings keep their innermost segment
    return heading.split(">")[-1].strip()


def merge_spans(group: list[Suggestion]) -> list[EvidenceSpan]:
    """Up to MAX_MERGED_SPANS spans, unique by text, in line order."""
    seen = set()
    spans = []
    for candidate in group:
        for span in candidate.evidence_spans:
            key = span.text.strip()
            if key and key not in seen:
                seen.add(key)
                spans.append(span)
    spans.sort(key=lambda s: (s.start_line, s.end_line))
    return spans[:MAX_MERGED_SPANS]


def build_body(spans: list[EvidenceSpan]) -> str:
    parts = [LIST_MARKER.sub("", s.text.strip()).strip() for s in spans[:MAX_BODY_SPANS]]
    parts = [p.rstrip(".") for p in parts if p]
    if not parts:
        return ""
    body = ". ".join(parts) + "."
    if len(body) > BODY_MAX_CHARS:
        body = body[:BODY_MAX_CHARS - 1] + "…"
    return body


def _merge(group: list[Suggestion], section: Section, title: str, ctx: RunContext) -> Suggestion:
    anchor = sorted(group, key=rank_key)[0]
    spans = merge_spans(group)
    body = build_body(spans) or anchor.display_context.body

    return Suggestion(
        suggestion_id=ctx.ids.next_suggestion_id(),
        note_id=anchor.note_id,
        section_id=section.section_id,
        type=SuggestionType.IDEA,
        title=title,
        payload=IdeaPayload(description=body),
        evidence_spans=spans,
        scores=anchor.scores.model_copy(),
        metadata=anchor.metadata.model_copy(
            update={"signal_family": "consolidated_section", "title_source": "heading"}
        ),
        display_context=DisplayContext(
            title=title,
            body=body,
            evidence_preview=[s.text.strip() for s in spans[:MAX_BODY_SPANS]],
            source_section_id=section.section_id,
            source_heading=section.heading_text or "",
        ),
    )


# =============================================================================
# Stage
# =============================================================================

def consolidate_sections(
    candidates: list[Suggestion],
    sections: dict[str, Section],
    ctx: RunContext,
) -> ConsolidationResult:
    """Collapse qualifying groups, keeping input order otherwise.

    A merged idea must pass the validators against its section; if it
    does not, the fragments are kept as they were.
    """
    by_section: dict[str, list[Suggestion]] = {}
    for candidate in candidates:
        by_section.setdefault(candidate.section_id, []).append(candidate)

    merged: dict[str, Suggestion] = {}
    groups: list[ConsolidatedGroup] = []
    for section_id, group in by_section.items():
        section = sections.get(section_id)
        title = consolidation_heading(section, group)
        if title is None:
            continue

        consolidated = _merge(group, section, title, ctx)
        passed, results = run_validators(consolidated, section, ctx.config.thresholds)
        if not passed:
            logger.debug(
                "consolidation_rejected",
                section_id=section_id,
                reason=results[-1].reason,
            )
            continue

        merged[section_id] = consolidated
        groups.append(ConsolidatedGroup(section_id, consolidated, group, results))

    result = []
    placed = set()
    for candidate in candidates:
        if candidate.section_id not in merged:
            result.append(candidate)
        elif candidate.section_id not in placed:
            placed.add(candidate.section_id)
            result.append(merged[candidate.section_id])

    logger.debug("consolidation_complete", groups=len(groups), candidates=len(result))
    return ConsolidationResult(candidates=result, groups=groups)
