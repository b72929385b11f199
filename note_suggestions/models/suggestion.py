"""Suggestion models shared by extractors, validators, scorer and aggregator.

A candidate and a surviving suggestion use the same model. The payload is
a tagged union keyed by ``type``, one variant per suggestion type.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from note_suggestions.models.enums import ExtractorName, SuggestionType
from note_suggestions.models.note import EvidenceSpan


# =============================================================================
# Payload Variants
# =============================================================================

class IdeaPayload(BaseModel):
    """A proposed new initiative or feature."""

    type: Literal["idea"] = "idea"
    description: str = Field(description="What is being proposed")
    source_paragraph_index: Optional[int] = Field(
        None, ge=0, description="Paragraph within the section that produced the idea"
    )


class ProjectUpdatePayload(BaseModel):
    """A change to an existing plan, schedule or ownership."""

    type: Literal["project_update"] = "project_update"
    after_description: str = Field(description="The plan as it stands after the change")
    timeline_refs: list[str] = Field(
        default_factory=list, description="Date/window tokens mentioned"
    )


class RiskPayload(BaseModel):
    """A delivery, scope or data-handling risk."""

    type: Literal["risk"] = "risk"
    description: str
    risk_tokens: list[str] = Field(default_factory=list)
    specificity: int = Field(default=0, ge=0, description="Distinct risk signals matched")


class BugPayload(BaseModel):
    """A defect in existing behavior."""

    type: Literal["bug"] = "bug"
    description: str
    symptom_tokens: list[str] = Field(default_factory=list)


SuggestionPayload = Annotated[
    Union[IdeaPayload, ProjectUpdatePayload, RiskPayload, BugPayload],
    Field(discriminator="type"),
]


def payload_body(payload: SuggestionPayload) -> str:
    """Return the main body text of any payload variant."""
    if isinstance(payload, ProjectUpdatePayload):
        return payload.after_description
    return payload.description


# =============================================================================
# Suggestion
# =============================================================================

class SuggestionScores(BaseModel):
    """Score breakdown; overall is the minimum of the other three."""

    section_actionability: float = Field(default=0.0, ge=0.0, le=1.0)
    type_choice_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    synthesis_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    overall: float = Field(default=0.0, ge=0.0, le=1.0)


class SuggestionMetadata(BaseModel):
    """Provenance of a candidate."""

    source_extractor: ExtractorName
    confidence: float = Field(ge=0.0, le=1.0, description="Extractor confidence")
    signal_family: Optional[str] = Field(
        None, description="Signal family or extractor-specific family tag"
    )
    title_source: Literal["heading", "derived", "signal"] = "derived"


class DisplayContext(BaseModel):
    """Presentation-ready fields for rendering surfaces."""

    title: str
    body: str
    evidence_preview: list[str] = Field(default_factory=list)
    source_section_id: str
    source_heading: str = ""


class Suggestion(BaseModel):
    """A candidate suggestion, and after validation a surviving one."""

    suggestion_id: str
    note_id: str
    section_id: str
    type: SuggestionType
    title: str
    payload: SuggestionPayload
    evidence_spans: list[EvidenceSpan] = Field(default_factory=list)
    scores: SuggestionScores = Field(default_factory=SuggestionScores)
    suggestion_key: str = Field(default="", description="Filled in by the key stage")
    metadata: SuggestionMetadata
    display_context: DisplayContext

    @property
    def body(self) -> str:
        return payload_body(self.payload)
