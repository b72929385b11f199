"""Stage 1: Preprocessor - Split a note into ordered, heading-delimited sections.

Responsibilities:
- Annotate every line with its structural type (0-based index)
- Detect markdown, numbered, plain-text and pseudo headings
- Fold heading-only sections into the next section ("Parent > Child")
- Compute structural features per section

Never raises for text input: heading-less notes become one section and
empty notes become zero sections.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import structlog

from note_suggestions.models import (
    DropReason,
    DropStage,
    Line,
    LineType,
    NoteInput,
    Section,
    StructuralFeatures,
)
from note_suggestions.pipeline.context import RunContext

logger = structlog.get_logger(__name__)


# =============================================================================
# Line Patterns
# =============================================================================

CODE_FENCE_PATTERN = re.compile(r"^(`{3,}|~{3,})")
MARKDOWN_HEADING_PATTERN = re.compile(r"^(#{1,6})\s+")
NUMBERED_HEADING_PATTERN = re.compile(r"^\s{0,2}\d+\.\s+\S")
QUOTE_PATTERN = re.compile(r"^>\s")
LIST_ITEM_PATTERN = re.compile(r"^(?:[-*+•]|\d+[.)])\s")

PLAIN_HEADING_MAX_CHARS = 40
PLAIN_HEADING_MAX_WORDS = 6

PSEUDO_HEADING_PATTERNS = [
    re.compile(r"^(Plan|Roadmap|Execution|Next Steps|Decisions|Goals|Scope|Timeline|Strategy):", re.IGNORECASE),
    re.compile(r"^(Q[1-4]\s+\d{4}|H[12]\s+\d{4})\b", re.IGNORECASE),
    re.compile(r"^(Phase\s+\d+|Sprint\s+\d+)\b", re.IGNORECASE),
]

# =============================================================================
# Structural Feature Patterns
# =============================================================================

DATE_PATTERN = re.compile(
    r"\b(january|february|march|april|may|june|july|august|september|october|november|december|\d{1,2}/\d{1,2}|\d{4})\b",
    re.IGNORECASE,
)
METRIC_PATTERN = re.compile(r"(\b\d+%|\b\d+x\b|\$\d+|\b(?:ARR|MRR|DAU|MAU|NPS|OKR)\b)", re.IGNORECASE)
QUARTER_PATTERN = re.compile(r"\b(Q[1-4]|H[12])\b", re.IGNORECASE)
VERSION_PATTERN = re.compile(r"\b(v\d+|MVP|alpha|beta|GA|launch)\b", re.IGNORECASE)
LAUNCH_PATTERN = re.compile(r"\b(launch|rollout|ship|release|deploy|go-live)\b", re.IGNORECASE)
INITIATIVE_PATTERNS = [
    re.compile(r"\blaunch\s+\w+", re.IGNORECASE),
    re.compile(r"\bbuild\s+\w+", re.IGNORECASE),
    re.compile(r"\bcreate\s+\w+", re.IGNORECASE),
    re.compile(r"\bspin\s+up\s+\w+", re.IGNORECASE),
    re.compile(r"\brollout\s+\w+", re.IGNORECASE),
    re.compile(r"\bship\s+\w+", re.IGNORECASE),
    re.compile(r"\bdeliver\s+\w+", re.IGNORECASE),
    re.compile(r"\bimplement\s+\w+", re.IGNORECASE),
]


@dataclass
class PreprocessingResult:
    """Annotated lines and the sections built from them."""
    lines: list[Line] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)


@dataclass
class _SectionDraft:
    heading_text: Optional[str]
    heading_level: Optional[int]
    start_line: int
    body_lines: list[Line] = field(default_factory=list)
    is_preamble: bool = False


# =============================================================================
# Line Annotation
# =============================================================================

def annotate_lines(text: str) -> list[Line]:
    """Split normalized text into typed lines."""
    raw_lines = text.split("\n")
    types: list[LineType] = []
    in_fence = False
    fence_marker = ""

    # First pass: fences, blanks and unambiguous types
    for raw in raw_lines:
        stripped = raw.strip()
        fence = CODE_FENCE_PATTERN.match(stripped)
        if fence and (not in_fence or stripped.startswith(fence_marker[0])):
            in_fence = not in_fence
            fence_marker = fence.group(1) if in_fence else ""
            types.append(LineType.CODE)
        elif in_fence:
            types.append(LineType.CODE)
        elif not stripped:
            types.append(LineType.BLANK)
        elif MARKDOWN_HEADING_PATTERN.match(stripped):
            types.append(LineType.HEADING)
        elif QUOTE_PATTERN.match(stripped):
            types.append(LineType.QUOTE)
        elif LIST_ITEM_PATTERN.match(stripped):
            types.append(LineType.LIST_ITEM)
        else:
            types.append(LineType.PARAGRAPH)

    # Second pass: a numbered line heads a block only when content follows
    for i, raw in enumerate(raw_lines):
        if types[i] == LineType.LIST_ITEM and NUMBERED_HEADING_PATTERN.match(raw):
            next_type = types[i + 1] if i + 1 < len(types) else None
            next_raw = raw_lines[i + 1] if i + 1 < len(raw_lines) else ""
            if next_type == LineType.PARAGRAPH or (
                next_type == LineType.LIST_ITEM and not NUMBERED_HEADING_PATTERN.match(next_raw)
            ):
                types[i] = LineType.HEADING

    lines = []
    for i, raw in enumerate(raw_lines):
        line_type = types[i]
        heading_level = None
        indent_level = None
        if line_type == LineType.HEADING:
            marker = MARKDOWN_HEADING_PATTERN.match(raw.strip())
            heading_level = len(marker.group(1)) if marker else 2
        elif line_type == LineType.LIST_ITEM:
            indent = len(raw) - len(raw.lstrip(" \t"))
            indent_level = len(raw[:indent].replace("\t", "  ")) // 2
        lines.append(Line(
            index=i,
            text=raw,
            line_type=line_type,
            heading_level=heading_level,
            indent_level=indent_level,
        ))
    return lines


def _heading_text(text: str) -> str:
    stripped = MARKDOWN_HEADING_PATTERN.sub("", text.strip())
    stripped = re.sub(r"^\d+\.\s+", "", stripped)
    return stripped.strip().rstrip(":").strip()


def _is_plain_text_heading(line: Line, next_line: Optional[Line]) -> bool:
    """Short, unpunctuated paragraph line followed by content."""
    if line.line_type != LineType.PARAGRAPH or next_line is None:
        return False
    stripped = line.text.strip()
    if len(stripped) > PLAIN_HEADING_MAX_CHARS:
        return False
    if re.search(r"[.?!]$", stripped):
        return False
    if not re.match(r"^[A-Z0-9]", stripped):
        return False
    if len(stripped.split()) > PLAIN_HEADING_MAX_WORDS:
        return False
    return next_line.line_type in (LineType.BLANK, LineType.PARAGRAPH, LineType.LIST_ITEM)


def _is_pseudo_heading(text: str) -> bool:
    stripped = text.strip()
    return any(pattern.match(stripped) for pattern in PSEUDO_HEADING_PATTERNS)


# =============================================================================
# Sectioning
# =============================================================================

def compute_structural_features(body_lines: list[Line]) -> StructuralFeatures:
    """Compute shape signals for a section body."""
    content = [line for line in body_lines if line.line_type != LineType.BLANK]
    full_text = " ".join(line.text for line in content).lower()

    initiative_count = sum(len(p.findall(full_text)) for p in INITIATIVE_PATTERNS)
    word_count = len(full_text.split())
    density = min(1.0, initiative_count / (word_count / 10)) if word_count else 0.0

    return StructuralFeatures(
        num_lines=len(content),
        num_list_items=sum(1 for line in content if line.line_type == LineType.LIST_ITEM),
        has_dates=bool(DATE_PATTERN.search(full_text)),
        has_metrics=bool(METRIC_PATTERN.search(full_text)),
        has_quarter_refs=bool(QUARTER_PATTERN.search(full_text)),
        has_version_refs=bool(VERSION_PATTERN.search(full_text)),
        has_launch_keywords=bool(LAUNCH_PATTERN.search(full_text)),
        initiative_phrase_density=density,
    )


def _segment(lines: list[Line]) -> list[_SectionDraft]:
    drafts: list[_SectionDraft] = []
    current: Optional[_SectionDraft] = None
    has_markdown_heading = False
    has_any_heading = False

    for i, line in enumerate(lines):
        next_line = lines[i + 1] if i + 1 < len(lines) else None

        if line.line_type == LineType.HEADING:
            has_markdown_heading = True
            has_any_heading = True
            current = _SectionDraft(
                heading_text=_heading_text(line.text),
                heading_level=line.heading_level,
                start_line=line.index,
            )
            drafts.append(current)
            continue

        in_preamble = current is not None and current.is_preamble
        if (not has_markdown_heading or in_preamble) and _is_plain_text_heading(line, next_line):
            has_any_heading = True
            current = _SectionDraft(
                heading_text=line.text.strip().rstrip(":"),
                heading_level=2,
                start_line=line.index,
            )
            drafts.append(current)
            continue

        if not has_any_heading and line.line_type == LineType.PARAGRAPH and _is_pseudo_heading(line.text):
            has_any_heading = True
            current = _SectionDraft(
                heading_text=line.text.strip().rstrip(":").strip(),
                heading_level=2,
                start_line=line.index,
            )
            drafts.append(current)
            continue

        if current is None:
            if line.line_type == LineType.BLANK:
                continue
            current = _SectionDraft(
                heading_text=None,
                heading_level=None,
                start_line=line.index,
                is_preamble=True,
            )
            drafts.append(current)
        current.body_lines.append(line)

    return drafts


def _fold_empty_sections(drafts: list[_SectionDraft]) -> list[_SectionDraft]:
    """Drop heading-only drafts, prefixing their heading onto the next one."""
    result = []
    pending: Optional[str] = None
    pending_start: Optional[int] = None

    for draft in drafts:
        has_body = any(line.text.strip() for line in draft.body_lines)
        if not has_body:
            if draft.heading_text:
                pending = f"{pending} > {draft.heading_text}" if pending else draft.heading_text
                pending_start = draft.start_line if pending_start is None else pending_start
            continue

        if pending:
            draft.heading_text = f"{pending} > {draft.heading_text}" if draft.heading_text else pending
            draft.start_line = pending_start
        result.append(draft)
        pending = None
        pending_start = None

    return result


def preprocess_note(note: NoteInput, ctx: RunContext) -> PreprocessingResult:
    """Annotate lines and segment the note into sections.

    Args:
        note: The caller's note.
        ctx: Run context that owns section ids and warnings.

    Returns:
        PreprocessingResult with every line and the ordered sections.
    """
    text = note.raw_text.replace("\r\n", "\n").replace("\r", "\n")
    if not text.strip():
        logger.info("preprocess_empty_note", note_id=note.note_id)
        return PreprocessingResult(lines=annotate_lines(text) if text else [], sections=[])

    lines = annotate_lines(text)
    drafts = _fold_empty_sections(_segment(lines))

    sections = []
    for draft in drafts:
        body = list(draft.body_lines)
        while body and body[-1].line_type == LineType.BLANK:
            body.pop()
        while body and body[0].line_type == LineType.BLANK:
            body.pop(0)
        raw_text = "\n".join(line.text for line in body)

        section = Section(
            section_id=ctx.ids.next_section_id(),
            note_id=note.note_id,
            start_line=draft.start_line,
            end_line=body[-1].index,
            heading_text=draft.heading_text,
            heading_level=draft.heading_level,
            raw_text=raw_text,
            body_lines=body,
            structural_features=compute_structural_features(body),
        )

        if len(raw_text) > ctx.config.max_section_chars:
            section = section.model_copy(update={
                "drop_stage": DropStage.SEGMENTATION,
                "drop_reason": DropReason.TOO_LARGE,
            })
            ctx.record_drop(
                DropReason.TOO_LARGE,
                detail=f"{len(raw_text)} chars > {ctx.config.max_section_chars}",
                section_id=section.section_id,
            )
            ctx.warnings.append({
                "stage": "preprocess",
                "warning": "section_too_large",
                "section_id": section.section_id,
            })
        sections.append(section)

    logger.info(
        "preprocess_complete",
        note_id=note.note_id,
        lines=len(lines),
        sections=len(sections),
    )
    return PreprocessingResult(lines=lines, sections=sections)
