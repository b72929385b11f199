"""Debug run recording and redaction."""

from note_suggestions.debug.recorder import (
    GENERATOR_VERSION,
    DebugRecorder,
    measure_payload,
    resolve_debug_verbosity,
)
from note_suggestions.debug.redaction import preview, redact

__all__ = [
    "GENERATOR_VERSION",
    "DebugRecorder",
    "measure_payload",
    "preview",
    "redact",
    "resolve_debug_verbosity",
]
