"""Redaction and preview helpers for debug artifacts.

In REDACTED mode these are the only path by which note text reaches a
DebugRun: every preview is pattern-scrubbed, then capped.
"""

import re
from typing import Optional

PREVIEW_MAX_CHARS = 160
PREVIEW_ELLIPSIS = "…"

# Order matters: cards before phones so long digit runs are not split
REDACTION_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b[\w.+-]+@[\w-]+(?:\.[\w-]+)+\b"), "[email]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[ssn]"),
    (re.compile(r"\b(?:\d[ -]?){12,15}\d\b"), "[card]"),
    (re.compile(r"(?:\+?\d{1,2}[\s.-]?)?\(?\b\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}\b"), "[phone]"),
]


def redact(text: str) -> str:
    """Replace emails, SSNs, card numbers and phone numbers with placeholders."""
    for pattern, replacement in REDACTION_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def preview(text: Optional[str], limit: int = PREVIEW_MAX_CHARS) -> Optional[str]:
    """Redacted single-line preview, capped at ``limit`` characters."""
    if text is None:
        return None
    flattened = " ".join(redact(text).split())
    if len(flattened) <= limit:
        return flattened
    return flattened[: limit - len(PREVIEW_ELLIPSIS)].rstrip() + PREVIEW_ELLIPSIS
