"""Collection run results."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field

from .base import BaseSchema, Severity, utcnow
from .job import CanonicalJob


class CollectionStatus(StrEnum):
    """Terminal status of a collection run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class ErrorDetails(BaseSchema):
    """An error recorded during a run."""

    code: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    severity: Severity = Severity.ERROR
    context: dict[str, Any] = Field(default_factory=dict)


class CollectionResult(BaseSchema):
    """Outcome of one collection run for one source."""

    source_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    status: CollectionStatus = CollectionStatus.SUCCESS
    jobs_collected: int = 0
    jobs_processed: int = 0
    jobs_stored: int = 0
    validation_failures: int = 0
    duration_ms: float = 0.0
    errors: list[ErrorDetails] = Field(default_factory=list)
    jobs: list[CanonicalJob] = Field(default_factory=list)

    def add_error(
        self,
        code: str,
        message: str,
        severity: Severity = Severity.ERROR,
        **context: Any,
    ) -> ErrorDetails:
        """Append an ErrorDetails entry and return it."""
        error = ErrorDetails(
            code=code, message=message, severity=severity, context=context
        )
        self.errors.append(error)
        return error

    def settle_status(self) -> CollectionStatus:
        """Derive status from errors and jobs: clean, partial or failed."""
        if not self.errors:
            self.status = CollectionStatus.SUCCESS
        elif self.jobs:
            self.status = CollectionStatus.PARTIAL
        else:
            self.status = CollectionStatus.FAILURE
        return self.status

    def log_record(self) -> dict[str, Any]:
        """Serializable form for the result log with truncated jobs."""
        data = self.model_dump(mode="json", exclude={"jobs"})
        data["jobs"] = [job.summary() for job in self.jobs]
        return data
