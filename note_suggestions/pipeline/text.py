"""Text helpers shared by every stage.

The normalization here defines the grounding invariant: evidence text is
grounded when its normalized form is a substring of the normalized section.
"""

import re
from dataclasses import dataclass

from note_suggestions.models import Line, LineType

PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")
WHITESPACE_PATTERN = re.compile(r"\s+")
SENTENCE_BOUNDARY_PATTERN = re.compile(r"(?<=[.!?])\s+")
LIST_MARKER_PATTERN = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+(?:\[[ xX]\]\s+)?")
LABEL_PREFIX_PATTERN = re.compile(r"^[\w\s/&-]{1,40}:\s+")
SMART_QUOTES = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})


@dataclass
class SentenceRef:
    """A sentence and the body line it came from."""
    text: str
    line_index: int
    index: int


def normalize_for_comparison(text: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    lowered = text.lower()
    stripped = PUNCTUATION_PATTERN.sub("", lowered)
    return WHITESPACE_PATTERN.sub(" ", stripped).strip()


def normalize_quotes(text: str) -> str:
    return text.translate(SMART_QUOTES)


def strip_list_marker(text: str) -> str:
    return LIST_MARKER_PATTERN.sub("", text).strip()


def strip_label_prefix(text: str) -> str:
    """Drop a leading 'Label:' prefix such as 'Immediate focus:'."""
    stripped = LABEL_PREFIX_PATTERN.sub("", text, count=1).strip()
    return stripped or text.strip()


def sentences_from_lines(lines: list[Line]) -> list[SentenceRef]:
    """Split body lines into sentences, keeping each sentence's line index."""
    refs: list[SentenceRef] = []
    for line in lines:
        if line.line_type in (LineType.BLANK, LineType.CODE):
            continue
        for piece in SENTENCE_BOUNDARY_PATTERN.split(line.text):
            piece = strip_list_marker(piece)
            if piece:
                refs.append(SentenceRef(text=piece, line_index=line.index, index=len(refs)))
    return refs


def truncate_at_word(text: str, limit: int, ellipsis: str = "") -> str:
    """Cut text to at most ``limit`` characters on a word boundary."""
    text = text.strip()
    if len(text) <= limit:
        return text
    room = limit - len(ellipsis)
    cut = text[:room]
    if " " in cut:
        cut = cut[: cut.rfind(" ")]
    return cut.rstrip(" ,;:-") + ellipsis


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


def non_whitespace_length(text: str) -> int:
    return len(WHITESPACE_PATTERN.sub("", text))


def compute_note_hash(text: str) -> str:
    """djb2 content hash rendered as 8 hex characters."""
    value = 5381
    for char in text.replace("\r\n", "\n").replace("\r", "\n"):
        value = ((value << 5) + value + ord(char)) & 0xFFFFFFFF
    return f"{value:08x}"
