"""Stage 3b: Semantic Idea Extraction - Composite-gated idea candidates.

A unit of text (the whole section, or one paragraph of a heading-less
section) becomes an idea only when it carries signal from more than one
token bucket. A single weak token never qualifies, and neither do
mechanism verbs on their own.

GATE:
- total matches >= 2 (feature constructs count double)
- at least one strategy token or construct
- at least one mechanism verb or construct
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import structlog

from note_suggestions.models import (
    DisplayContext,
    EvidenceSpan,
    ExtractorName,
    IdeaPayload,
    Line,
    LineType,
    Section,
    Suggestion,
    SuggestionMetadata,
    SuggestionType,
)
from note_suggestions.pipeline.context import CoverageSet, RunContext
from note_suggestions.pipeline.stages.timeline_merge import is_timeline_owned, is_timeline_section
from note_suggestions.pipeline.text import (
    SentenceRef,
    capitalize_first,
    sentences_from_lines,
    strip_label_prefix,
    truncate_at_word,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Token Tables
# =============================================================================

STRATEGY_TOKENS = [
    "strategy", "approach", "system", "framework", "prioritization", "scoring", "automation",
]

MECHANISM_TOKENS = [
    "introduce", "use", "extend", "calculate", "integrate", "automate", "parse", "upload", "layer",
]

FEATURE_CONSTRUCTS = [
    "photo upload", "ai parsing", "scoring model", "prioritization system",
]

CONSTRUCT_WEIGHT = 2

GENERIC_HEADINGS = {
    "general", "overview", "summary", "notes", "misc", "other", "details", "background",
    "context", "introduction", "appendix", "todo", "update", "updates", "status", "info",
    "discussion", "discussion details", "agenda", "recap",
}

MIN_PARAGRAPH_CHARS = 20
TITLE_MAX_CHARS = 60
MAX_HEADING_LEVEL = 3

NOISE_PREFIX = re.compile(
    r"^(?:we|i|they|it)\s+(?:should|will|need\s+to|plan\s+to|want\s+to|can|could)\s+", re.IGNORECASE
)
LEADING_MECHANISM = re.compile(r"^(?:use|using|introduce|introducing)\s+", re.IGNORECASE)
LEADING_ARTICLE = re.compile(r"^(?:an?|the|our|some)\s+", re.IGNORECASE)
VERB_PHRASE = re.compile(
    r"\b(?:introduce|use|build|create|add|implement|adopt|extend|integrate|automate)\s+"
    r"((?:(?:an?|the|our)\s+)?[a-z][\w-]*(?:\s+[a-z][\w-]*){0,6})",
    re.IGNORECASE,
)
STRATEGY_NOUN = re.compile(
    r"((?:[a-z][\w-]*\s+){0,2}(?:" + "|".join(STRATEGY_TOKENS) + r"))\b",
    re.IGNORECASE,
)
CLAUSE_BREAK = re.compile(r"[,;:]|\s+-\s+")


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class TokenMatches:
    """Bucket counts for one unit of text."""
    strategy: list[str] = field(default_factory=list)
    mechanism: list[str] = field(default_factory=list)
    constructs: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.strategy) + len(self.mechanism) + CONSTRUCT_WEIGHT * len(self.constructs)

    @property
    def passes_gate(self) -> bool:
        if self.total < 2:
            return False
        has_anchor = bool(self.strategy or self.constructs)
        has_mechanism = bool(self.mechanism or self.constructs)
        return has_anchor and has_mechanism


@dataclass
class IdeaUnit:
    """A section or paragraph evaluated against the gate."""
    paragraph_index: Optional[int]
    sentences: list[SentenceRef]

    @property
    def text(self) -> str:
        return " ".join(s.text for s in self.sentences)


@dataclass
class IdeaExtractionTrace:
    mode: str = "section"
    units: int = 0
    gated_out: int = 0
    skipped_covered: int = 0
    title_source: Optional[str] = None


# =============================================================================
# Gate And Title Helpers
# =============================================================================

def _whole_word(token: str, text: str) -> bool:
    return re.search(rf"\b{re.escape(token)}\b", text) is not None


def count_tokens(text: str) -> TokenMatches:
    """Count bucket matches: whole-word for tokens, substring for constructs."""
    lowered = text.lower()
    return TokenMatches(
        strategy=[t for t in STRATEGY_TOKENS if _whole_word(t, lowered)],
        mechanism=[t for t in MECHANISM_TOKENS if _whole_word(t, lowered)],
        constructs=[c for c in FEATURE_CONSTRUCTS if c in lowered],
    )


def idea_confidence(matches: TokenMatches) -> float:
    return min(0.75, 0.60 + 0.05 * matches.total)


def is_generic_heading(heading: str) -> bool:
    normalized = heading.strip().lower().rstrip(":")
    if not normalized:
        return True
    # Folded headings are judged by their last segment
    last = normalized.split(">")[-1].strip()
    if last in GENERIC_HEADINGS:
        return True
    return len(last) <= 6 and " " not in last


def usable_heading(section: Section) -> Optional[str]:
    """The section heading verbatim, when it can stand as an idea title."""
    if not section.heading_text or section.heading_level is None:
        return None
    if section.heading_level > MAX_HEADING_LEVEL:
        return None
    if is_generic_heading(section.heading_text):
        return None
    return section.heading_text.strip()


def _clean_clause(text: str) -> str:
    text = strip_label_prefix(text)
    text = NOISE_PREFIX.sub("", text)
    text = LEADING_MECHANISM.sub("", text)
    text = LEADING_ARTICLE.sub("", text)
    return text.strip().rstrip(".!?")


def derive_title(sentence: str) -> Optional[str]:
    """Title from the highest-signal sentence.

    Attempts, in order: verb-phrase object, strategy noun phrase, first clause.
    """
    cleaned = _clean_clause(sentence)

    if NOISE_PREFIX.match(strip_label_prefix(sentence)) or LEADING_MECHANISM.match(strip_label_prefix(sentence)):
        candidate = cleaned
    else:
        candidate = None
        match = VERB_PHRASE.search(sentence)
        if match:
            candidate = LEADING_ARTICLE.sub("", match.group(1)).strip()

    if not candidate:
        match = STRATEGY_NOUN.search(cleaned)
        if match:
            candidate = LEADING_ARTICLE.sub("", match.group(1)).strip()

    if not candidate:
        candidate = CLAUSE_BREAK.split(cleaned)[0].strip()

    if not candidate or len(candidate) < 4:
        return None
    return capitalize_first(truncate_at_word(candidate, TITLE_MAX_CHARS))


def _best_sentence(sentences: list[SentenceRef]) -> SentenceRef:
    # Ties go to the earliest sentence
    return max(sentences, key=lambda s: (count_tokens(s.text).total, -s.index))


# =============================================================================
# Unit Construction
# =============================================================================

def _paragraphs(lines: list[Line]) -> list[list[Line]]:
    paragraphs: list[list[Line]] = []
    current: list[Line] = []
    for line in lines:
        if line.line_type == LineType.BLANK:
            if current:
                paragraphs.append(current)
                current = []
            continue
        current.append(line)
    if current:
        paragraphs.append(current)
    return [p for p in paragraphs if len(" ".join(l.text for l in p).strip()) >= MIN_PARAGRAPH_CHARS]


def _units_for(section: Section, heading: Optional[str]) -> tuple[str, list[IdeaUnit]]:
    if heading is None:
        paragraphs = _paragraphs(section.body_lines)
        if len(paragraphs) >= 2:
            return "paragraph", [
                IdeaUnit(paragraph_index=i, sentences=sentences_from_lines(p))
                for i, p in enumerate(paragraphs)
            ]
    return "section", [IdeaUnit(paragraph_index=None, sentences=sentences_from_lines(section.body_lines))]


# =============================================================================
# Extractor
# =============================================================================

def extract_ideas(
    section: Section,
    coverage: CoverageSet,
    ctx: RunContext,
) -> tuple[list[Suggestion], IdeaExtractionTrace]:
    """Emit gated idea candidates for one actionable section.

    Only sentences not already claimed by an earlier extractor take part,
    both in the gate and in the evidence.
    """
    heading = usable_heading(section)
    mode, units = _units_for(section, heading)
    trace = IdeaExtractionTrace(mode=mode, units=len(units))
    timeline_section = is_timeline_section(section)

    candidates: list[Suggestion] = []
    for unit in units:
        sentences = []
        for sentence in unit.sentences:
            if coverage.is_covered(sentence.text):
                trace.skipped_covered += 1
                continue
            if timeline_section and is_timeline_owned(sentence.text):
                continue
            sentences.append(sentence)
        if not sentences:
            continue

        text = " ".join(s.text for s in sentences)
        matches = count_tokens(text)
        if not matches.passes_gate:
            trace.gated_out += 1
            continue

        title = heading
        title_source = "heading"
        if title is None:
            title = derive_title(_best_sentence(sentences).text)
            title_source = "derived"
        if title is None:
            trace.gated_out += 1
            continue
        trace.title_source = title_source

        candidate = Suggestion(
            suggestion_id=ctx.ids.next_suggestion_id(),
            note_id=section.note_id,
            section_id=section.section_id,
            type=SuggestionType.IDEA,
            title=title,
            payload=IdeaPayload(description=text, source_paragraph_index=unit.paragraph_index),
            evidence_spans=[
                EvidenceSpan(start_line=s.line_index, end_line=s.line_index, text=s.text) for s in sentences
            ],
            metadata=SuggestionMetadata(
                source_extractor=ExtractorName.IDEA_SEMANTIC,
                confidence=idea_confidence(matches),
                signal_family="idea",
                title_source=title_source,
            ),
            display_context=DisplayContext(
                title=title,
                body=text,
                evidence_preview=[s.text for s in sentences],
                source_section_id=section.section_id,
                source_heading=section.heading_text or "",
            ),
        )
        for s in sentences:
            coverage.claim(s.text)
        candidates.append(candidate)

    logger.debug(
        "idea_extraction_complete",
        section_id=section.section_id,
        mode=mode,
        candidates=len(candidates),
    )
    return candidates, trace
