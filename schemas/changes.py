"""Structural change detection models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from .base import BaseSchema, utcnow


class ChangeStatus(StrEnum):
    UNCHANGED = "unchanged"
    MINOR_CHANGES = "minor_changes"
    MAJOR_CHANGES = "major_changes"
    ERROR = "error"


class Impact(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StructuralChange(BaseSchema):
    """One discrepancy between the stored and current page structure."""

    element_type: str
    path: str
    previous_value: str | None = None
    current_value: str | None = None
    impact: Impact
    message: str


class ChangeDetectionResult(BaseSchema):
    """Outcome of a change-detection pass for one source."""

    source_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    status: ChangeStatus = ChangeStatus.UNCHANGED
    changes: list[StructuralChange] = Field(default_factory=list)
    can_adapt_automatically: bool = True
    fingerprint: str | None = None

    @property
    def high_impact_changes(self) -> list[StructuralChange]:
        return [c for c in self.changes if c.impact == Impact.HIGH]
