"""Run configuration and run result models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from note_suggestions.config.settings import Settings
from note_suggestions.models.enums import DebugVerbosity
from note_suggestions.models.suggestion import Suggestion


class ThresholdConfig(BaseModel):
    """Gating thresholds used by the classifier, validators and scorer."""

    T_action: float = Field(default=0.5, ge=0.0, le=1.0)
    T_out_of_scope: float = Field(default=0.4, ge=0.0, le=1.0)
    T_section_min: float = Field(default=0.6, ge=0.0, le=1.0)
    T_overall_min: float = Field(default=0.65, ge=0.0, le=1.0)
    T_generic: float = Field(default=0.55, ge=0.0, le=1.0)
    MIN_EVIDENCE_CHARS: int = Field(default=120, ge=0)


class EngineConfig(BaseModel):
    """Everything a pipeline run depends on besides the note itself."""

    max_suggestions_per_note: int = Field(default=5, ge=0, description="0 = uncapped")
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    max_section_chars: int = Field(default=20000, ge=1)
    enable_debug: bool = False
    debug_verbosity: DebugVerbosity = DebugVerbosity.REDACTED
    allow_full_text_debug: bool = Field(
        default=False, description="Non-production switch that permits FULL_TEXT debug runs"
    )
    debug_max_bytes: int = Field(default=512 * 1024, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        """Build a run configuration from environment settings."""
        return cls(
            max_suggestions_per_note=settings.max_suggestions_per_note,
            thresholds=ThresholdConfig(
                T_action=settings.t_action,
                T_out_of_scope=settings.t_out_of_scope,
                T_section_min=settings.t_section_min,
                T_overall_min=settings.t_overall_min,
                T_generic=settings.t_generic,
                MIN_EVIDENCE_CHARS=settings.min_evidence_chars,
            ),
            max_section_chars=settings.max_section_chars,
            enable_debug=settings.enable_debug,
            debug_verbosity=DebugVerbosity(settings.debug_verbosity.lower()),
            allow_full_text_debug=settings.allow_full_text_debug,
            debug_max_bytes=settings.debug_max_bytes,
        )


class RunInvariants(BaseModel):
    """Post-aggregation checks reported alongside every result."""

    max_respected: bool = True
    trimmed_to_max: bool = False
    aggregation_valid: bool = True


class RunResult(BaseModel):
    """Production output of one pipeline invocation."""

    run_id: str = Field(description="Unique per invocation")
    note_id: str
    note_hash: str = Field(description="Deterministic hash of the note text")
    created_at: datetime
    line_count: int = Field(ge=0)
    final_suggestions: list[Suggestion] = Field(default_factory=list)
    invariants: RunInvariants = Field(default_factory=RunInvariants)
    config_snapshot: EngineConfig
    warnings: list[dict] = Field(default_factory=list)
    debug_storage_skipped_reason: Optional[str] = Field(
        None, description="Set when a debug run was computed but is too large to persist"
    )
