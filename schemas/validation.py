"""Validation issue models."""

from __future__ import annotations

from pydantic import Field

from .base import BaseSchema, Severity


class ValidationIssue(BaseSchema):
    """A single problem found on a job record. Descriptive only."""

    field: str
    severity: Severity
    message: str
    code: str


class ValidationResult(BaseSchema):
    """Outcome of validating one record."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not any(i.severity == Severity.ERROR for i in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]
