"""Per-run state threaded through the stages.

Nothing here is module-level: each call to run_pipeline builds its own
RunContext, so concurrent runs never share ids or coverage.
"""

from dataclasses import dataclass, field
from typing import Optional

from note_suggestions.models import (
    DROP_REASON_STAGE,
    DropReason,
    DropStage,
    EngineConfig,
)
from note_suggestions.pipeline.text import normalize_for_comparison


class IdGenerator:
    """Sequential, run-scoped id source."""

    def __init__(self, note_hash: str):
        self._note_hash = note_hash
        self._section_seq = 0
        self._suggestion_seq = 0

    def next_section_id(self) -> str:
        self._section_seq += 1
        return f"section_{self._section_seq:03d}"

    def next_suggestion_id(self) -> str:
        self._suggestion_seq += 1
        return f"sug_{self._note_hash}_{self._suggestion_seq:03d}"


class CoverageSet:
    """Normalized evidence text already claimed by an earlier extractor."""

    def __init__(self) -> None:
        self._claimed: list[str] = []
        self._exact: set[str] = set()

    def claim(self, text: str) -> None:
        normalized = normalize_for_comparison(text)
        if normalized and normalized not in self._exact:
            self._exact.add(normalized)
            self._claimed.append(normalized)

    def is_covered(self, text: str) -> bool:
        normalized = normalize_for_comparison(text)
        if not normalized:
            return False
        if normalized in self._exact:
            return True
        return any(normalized in claimed for claimed in self._claimed)

    def __len__(self) -> int:
        return len(self._claimed)

    def __contains__(self, text: str) -> bool:
        return self.is_covered(text)


@dataclass
class DropRecord:
    """Why a section or candidate left the pipeline."""
    reason: DropReason
    detail: str = ""
    section_id: Optional[str] = None
    suggestion_id: Optional[str] = None

    @property
    def stage(self) -> DropStage:
        return DROP_REASON_STAGE[self.reason]


@dataclass
class RunContext:
    """Run-scoped collaborators: config, ids, coverage and the drop log."""
    config: EngineConfig
    note_id: str
    note_hash: str
    ids: IdGenerator
    coverage: CoverageSet = field(default_factory=CoverageSet)
    drops: list[DropRecord] = field(default_factory=list)
    warnings: list[dict] = field(default_factory=list)

    @classmethod
    def create(cls, config: EngineConfig, note_id: str, note_hash: str) -> "RunContext":
        return cls(
            config=config,
            note_id=note_id,
            note_hash=note_hash,
            ids=IdGenerator(note_hash),
        )

    def record_drop(
        self,
        reason: DropReason,
        detail: str = "",
        section_id: Optional[str] = None,
        suggestion_id: Optional[str] = None,
    ) -> DropRecord:
        record = DropRecord(
            reason=reason,
            detail=detail,
            section_id=section_id,
            suggestion_id=suggestion_id,
        )
        self.drops.append(record)
        return record
