"""Stage 3c: Timeline Merge - One update and at most one risk per timeline section.

Date-bearing bullets under a timeline/implementation heading are merged
into a single project_update candidate. Security-bearing bullets compete
for a single risk candidate; the most specific one wins. The two pools
never share a line.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import structlog

from note_suggestions.models import (
    DisplayContext,
    EvidenceSpan,
    ExtractorName,
    LineType,
    ProjectUpdatePayload,
    RiskPayload,
    Section,
    Suggestion,
    SuggestionMetadata,
    SuggestionType,
)
from note_suggestions.pipeline.context import CoverageSet, RunContext
from note_suggestions.pipeline.text import (
    LABEL_PREFIX_PATTERN,
    capitalize_first,
    strip_label_prefix,
    strip_list_marker,
    truncate_at_word,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Patterns
# =============================================================================

TIMELINE_HEADING_PATTERN = re.compile(r"\b(timeline|implementation|schedule|roadmap|milestones?)\b", re.IGNORECASE)

# "may" is left out: as a modal verb it is far more common than the month
TIMELINE_DATE_TOKENS = re.compile(
    r"\b(\d+[-\s](?:week|day|month|year|sprint)s?|target\s+\w+|q[1-4]\s*\d{4}"
    r"|jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|june?|july?|aug(?:ust)?"
    r"|sep(?:t|tember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b",
    re.IGNORECASE,
)

SECURITY_LEXICAL_TOKENS = re.compile(
    r"\b(pii|security|compliance|gdpr|privacy|vulnerability|exposure|logging|blocker)\b", re.IGNORECASE
)

PERSONAL_DATA_OBJECTS = re.compile(
    r"\b(user\s+ids?|emails?(?:\s+addresses)?|personal\s+data|phone\s+numbers?|ssns?|credit\s+cards?|pii)\b",
    re.IGNORECASE,
)

# Words that can sit beside a date without naming a subject ("3-month window")
SCHEDULE_FILLER = re.compile(
    r"\b(window|timeline|target(?:ed|ing)?|early|mid|late|end|start|by|in|around|for|of|the|a|an)\b|[\d\W_]+",
    re.IGNORECASE,
)

UPDATE_TITLE_MAX_CHARS = 60
RISK_TITLE_MAX_CHARS = 50
UPDATE_CONFIDENCE = 0.8
SPECIFIC_RISK_CONFIDENCE = 0.85
GENERIC_RISK_CONFIDENCE = 0.7


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class BulletLine:
    """A stripped body line with its section-absolute index."""
    line_index: int
    text: str


@dataclass
class TimelineMergeTrace:
    """Which lines went to which pool, and which risks lost."""
    fired: bool = False
    date_lines: list[int] = field(default_factory=list)
    security_lines: list[int] = field(default_factory=list)
    ambiguous_lines: list[int] = field(default_factory=list)
    chosen_risk_line: Optional[int] = None
    suppressed_risk_lines: list[int] = field(default_factory=list)


# =============================================================================
# Helper Functions
# =============================================================================

def is_timeline_section(section: Section) -> bool:
    return bool(section.heading_text and TIMELINE_HEADING_PATTERN.search(section.heading_text))


def is_timeline_owned(sentence: str) -> bool:
    """Date-bearing and security-bearing sentences belong to this extractor in timeline sections."""
    return bool(TIMELINE_DATE_TOKENS.search(sentence) or SECURITY_LEXICAL_TOKENS.search(sentence))


def risk_specificity(text: str) -> int:
    """Distinct security tokens plus distinct personal-data objects."""
    security = {m.group(0).lower() for m in SECURITY_LEXICAL_TOKENS.finditer(text)}
    objects = {re.sub(r"\s+", " ", m.group(0).lower()) for m in PERSONAL_DATA_OBJECTS.finditer(text)}
    return len(security) + len(objects)


def choose_risk_line(candidates: list[BulletLine]) -> Optional[BulletLine]:
    """Most specific line wins; ties go to the earliest line."""
    if not candidates:
        return None
    return min(candidates, key=lambda b: (-risk_specificity(b.text), b.line_index))


def _bullets(section: Section) -> list[BulletLine]:
    bullets = []
    for line in section.body_lines:
        if line.line_type in (LineType.BLANK, LineType.CODE, LineType.HEADING):
            continue
        text = strip_list_marker(line.text)
        if text:
            bullets.append(BulletLine(line_index=line.index, text=text))
    return bullets


def is_schedule_only(text: str) -> bool:
    """True when text holds dates and filler words but no subject."""
    remainder = SCHEDULE_FILLER.sub(" ", TIMELINE_DATE_TOKENS.sub(" ", text))
    return not remainder.strip()


def _update_title(first: BulletLine) -> str:
    clause = strip_label_prefix(first.text)
    label = LABEL_PREFIX_PATTERN.match(first.text)
    if label and clause != first.text.strip() and is_schedule_only(clause):
        # "Ham Light deployment: 3-month window" keeps its subject
        subject = label.group(0).strip().rstrip(":").strip()
        clause = f"{subject} ({clause})"
    return f"Update: {truncate_at_word(clause, UPDATE_TITLE_MAX_CHARS - 3, ellipsis='...')}"


def _risk_title(line: BulletLine) -> str:
    label = LABEL_PREFIX_PATTERN.match(line.text)
    if label:
        return f"Risk: {label.group(0).strip().rstrip(':').strip()}"
    return f"Risk: {capitalize_first(truncate_at_word(line.text, RISK_TITLE_MAX_CHARS))}"


def _build_update(section: Section, lines: list[BulletLine], ctx: RunContext) -> Suggestion:
    body = "\n".join(b.text for b in lines)
    title = _update_title(lines[0])
    refs = []
    for b in lines:
        for match in TIMELINE_DATE_TOKENS.finditer(b.text):
            if match.group(0) not in refs:
                refs.append(match.group(0))
    return Suggestion(
        suggestion_id=ctx.ids.next_suggestion_id(),
        note_id=section.note_id,
        section_id=section.section_id,
        type=SuggestionType.PROJECT_UPDATE,
        title=title,
        payload=ProjectUpdatePayload(after_description=body, timeline_refs=refs),
        evidence_spans=[
            EvidenceSpan(start_line=b.line_index, end_line=b.line_index, text=b.text) for b in lines
        ],
        metadata=SuggestionMetadata(
            source_extractor=ExtractorName.TIMELINE_MERGE,
            confidence=UPDATE_CONFIDENCE,
            signal_family="timeline",
            title_source="derived",
        ),
        display_context=DisplayContext(
            title=title,
            body=body,
            evidence_preview=[b.text for b in lines],
            source_section_id=section.section_id,
            source_heading=section.heading_text or "",
        ),
    )


def _build_risk(section: Section, line: BulletLine, ctx: RunContext) -> Suggestion:
    title = _risk_title(line)
    tokens = sorted({m.group(0).lower() for m in SECURITY_LEXICAL_TOKENS.finditer(line.text)})
    has_object = bool(PERSONAL_DATA_OBJECTS.search(line.text))
    specific = has_object and "logging" in tokens
    return Suggestion(
        suggestion_id=ctx.ids.next_suggestion_id(),
        note_id=section.note_id,
        section_id=section.section_id,
        type=SuggestionType.RISK,
        title=title,
        payload=RiskPayload(
            description=line.text,
            risk_tokens=tokens,
            specificity=risk_specificity(line.text),
        ),
        evidence_spans=[EvidenceSpan(start_line=line.line_index, end_line=line.line_index, text=line.text)],
        metadata=SuggestionMetadata(
            source_extractor=ExtractorName.TIMELINE_MERGE,
            confidence=SPECIFIC_RISK_CONFIDENCE if specific else GENERIC_RISK_CONFIDENCE,
            signal_family="pii_exposure" if has_object else "security",
            title_source="derived",
        ),
        display_context=DisplayContext(
            title=title,
            body=line.text,
            evidence_preview=[line.text],
            source_section_id=section.section_id,
            source_heading=section.heading_text or "",
        ),
    )


# =============================================================================
# Extractor
# =============================================================================

def merge_timeline(
    section: Section,
    coverage: CoverageSet,
    ctx: RunContext,
) -> tuple[list[Suggestion], TimelineMergeTrace]:
    """Merge the date bullets of a timeline section and pick its one risk.

    Returns:
        Tuple of (candidates, trace). Non-timeline sections return no
        candidates and an unfired trace.
    """
    trace = TimelineMergeTrace()
    if not is_timeline_section(section):
        return [], trace
    trace.fired = True

    date_pool: list[BulletLine] = []
    risk_pool: list[BulletLine] = []
    for bullet in _bullets(section):
        if coverage.is_covered(bullet.text):
            continue
        has_date = bool(TIMELINE_DATE_TOKENS.search(bullet.text))
        has_security = bool(SECURITY_LEXICAL_TOKENS.search(bullet.text))
        if has_date and has_security:
            # Belongs to neither pool; either body would be cross-mixed
            trace.ambiguous_lines.append(bullet.line_index)
        elif has_date:
            date_pool.append(bullet)
        elif has_security:
            risk_pool.append(bullet)

    trace.date_lines = [b.line_index for b in date_pool]
    trace.security_lines = [b.line_index for b in risk_pool]

    candidates: list[Suggestion] = []
    if date_pool:
        candidates.append(_build_update(section, date_pool, ctx))
        for b in date_pool:
            coverage.claim(b.text)

    chosen = choose_risk_line(risk_pool)
    if chosen is not None:
        trace.chosen_risk_line = chosen.line_index
        trace.suppressed_risk_lines = [b.line_index for b in risk_pool if b is not chosen]
        candidates.append(_build_risk(section, chosen, ctx))
        coverage.claim(chosen.text)

    logger.debug(
        "timeline_merge_complete",
        section_id=section.section_id,
        date_lines=len(date_pool),
        security_lines=len(risk_pool),
        candidates=len(candidates),
    )
    return candidates, trace
