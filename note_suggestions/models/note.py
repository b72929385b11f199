"""Note-side data models: the input note, its lines and sections.

Stage Flow:
1. Preprocessor   → list[Line], list[Section]
2. Classifier     → list[Section] (labels and actionability filled in)
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from note_suggestions.models.enums import (
    DropReason,
    DropStage,
    IntentLabel,
    LineType,
    SuggestionType,
)


class NoteInput(BaseModel):
    """A meeting note as supplied by the caller. Never modified."""

    model_config = ConfigDict(frozen=True)

    note_id: str = Field(description="Caller-owned note identifier")
    raw_text: str = Field(description="Free-form markdown or plain text")
    occurred_at: Optional[datetime] = Field(
        None, description="When the meeting took place, if known"
    )


class Line(BaseModel):
    """One line of the note, indexed from 0."""

    index: int = Field(ge=0, description="0-based line number in the note")
    text: str = Field(description="Verbatim line text (line endings normalized)")
    line_type: LineType
    heading_level: Optional[int] = Field(None, ge=1, le=6)
    indent_level: Optional[int] = Field(None, ge=0)


class StructuralFeatures(BaseModel):
    """Shape signals computed from a section body."""

    num_lines: int = 0
    num_list_items: int = 0
    has_dates: bool = False
    has_metrics: bool = False
    has_quarter_refs: bool = False
    has_version_refs: bool = False
    has_launch_keywords: bool = False
    initiative_phrase_density: float = Field(default=0.0, ge=0.0, le=1.0)


class Section(BaseModel):
    """A contiguous heading-delimited block of the note.

    Created by the preprocessor, labelled once by the classifier and
    read-only after that. Downstream stages refer to it by section_id.
    """

    section_id: str = Field(description="Run-scoped id (e.g., 'section_001')")
    note_id: str
    start_line: int = Field(ge=0, description="First line (heading line when present)")
    end_line: int = Field(ge=0, description="Last body line")
    heading_text: Optional[str] = None
    heading_level: Optional[int] = Field(None, ge=1, le=6)
    raw_text: str = Field(description="Body text joined with newlines")
    body_lines: list[Line] = Field(default_factory=list)
    structural_features: StructuralFeatures = Field(default_factory=StructuralFeatures)

    # Classifier output
    intent_label: IntentLabel = IntentLabel.DISCUSSION
    intent_score: float = Field(default=0.0, ge=0.0, le=1.0)
    type_label: SuggestionType = SuggestionType.IDEA
    type_score: float = Field(default=0.0, ge=0.0, le=1.0)
    is_actionable: bool = False
    actionable_signal: float = Field(default=0.0, ge=0.0, le=1.0)
    out_of_scope_signal: float = Field(default=0.0, ge=0.0, le=1.0)
    actionability_reason: str = ""

    # Exit record
    drop_stage: Optional[DropStage] = None
    drop_reason: Optional[DropReason] = None

    @property
    def is_dropped(self) -> bool:
        return self.drop_reason is not None


class EvidenceSpan(BaseModel):
    """A verbatim slice of a section that supports a suggestion."""

    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0)
    text: str = Field(description="Verbatim text found in the section body")
