"""Schema and business-rule validation for canonical job records.

Validation never mutates a record and never raises for bad data; every
problem becomes a ValidationIssue. Three passes run independently:
required fields, formats, then business rules.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime
from typing import Any

from core.ids import is_http_url
from schemas.base import Severity, utcnow
from schemas.job import CanonicalJob
from schemas.validation import ValidationIssue, ValidationResult

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

REQUIRED_FIELDS = (
    "external_id",
    "title",
    "source",
    "source_url",
    "description",
    "company.name",
    "publication_date",
)

TITLE_MIN, TITLE_MAX = 3, 100
DESCRIPTION_MIN, DESCRIPTION_MAX = 50, 10_000


def get_path(job: CanonicalJob, path: str) -> Any:
    """Resolve a dotted attribute path such as ``company.name``."""
    value: Any = job
    for part in path.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class SchemaValidator:
    """Validates canonical job records."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def validate(self, job: CanonicalJob) -> ValidationResult:
        issues: list[ValidationIssue] = []
        issues += self.check_required(job)
        issues += self.check_formats(job)
        issues += self.check_business_rules(job)
        return ValidationResult(issues=issues)

    def check_required(self, job: CanonicalJob) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                field=path,
                severity=Severity.ERROR,
                message=f"Required field '{path}' is missing",
                code="missing_required_field",
            )
            for path in REQUIRED_FIELDS
            if _missing(get_path(job, path))
        ]

    def check_formats(self, job: CanonicalJob) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []

        urls = (
            ("source_url", Severity.ERROR),
            ("company.website", Severity.WARNING),
            ("application_details.url", Severity.WARNING),
        )
        for path, severity in urls:
            value = get_path(job, path)
            if not _missing(value) and not is_http_url(value):
                issues.append(
                    ValidationIssue(
                        field=path,
                        severity=severity,
                        message=f"'{value}' is not a valid http(s) URL",
                        code="invalid_format",
                    )
                )

        for path in ("company.email", "application_details.email"):
            value = get_path(job, path)
            if not _missing(value) and not EMAIL_RE.match(value):
                issues.append(
                    ValidationIssue(
                        field=path,
                        severity=Severity.WARNING,
                        message=f"'{value}' is not a valid email address",
                        code="invalid_format",
                    )
                )

        dates = (
            ("publication_date", Severity.ERROR),
            ("last_publication_date", Severity.WARNING),
            ("expiration_date", Severity.WARNING),
            ("application_details.deadline", Severity.WARNING),
        )
        for path, severity in dates:
            value = get_path(job, path)
            # Unparseable dates are kept as strings by the model
            if isinstance(value, str) and value.strip():
                issues.append(
                    ValidationIssue(
                        field=path,
                        severity=severity,
                        message=f"'{value}' is not a valid date",
                        code="invalid_format",
                    )
                )

        return issues

    def check_business_rules(self, job: CanonicalJob) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        now = self._clock()

        if job.title and not TITLE_MIN <= len(job.title) <= TITLE_MAX:
            code = "title_too_short" if len(job.title) < TITLE_MIN else "title_too_long"
            issues.append(
                ValidationIssue(
                    field="title",
                    severity=Severity.WARNING,
                    message=f"Title length {len(job.title)} outside [{TITLE_MIN}, {TITLE_MAX}]",
                    code=code,
                )
            )

        if job.description and not DESCRIPTION_MIN <= len(job.description) <= DESCRIPTION_MAX:
            code = (
                "description_too_short"
                if len(job.description) < DESCRIPTION_MIN
                else "description_too_long"
            )
            issues.append(
                ValidationIssue(
                    field="description",
                    severity=Severity.WARNING,
                    message=(
                        f"Description length {len(job.description)} outside "
                        f"[{DESCRIPTION_MIN}, {DESCRIPTION_MAX}]"
                    ),
                    code=code,
                )
            )

        published = job.publication_date if isinstance(job.publication_date, datetime) else None
        expires = job.expiration_date if isinstance(job.expiration_date, datetime) else None
        deadline = job.application_details.deadline
        deadline = deadline if isinstance(deadline, datetime) else None

        if published and published > now:
            issues.append(
                ValidationIssue(
                    field="publication_date",
                    severity=Severity.WARNING,
                    message="Publication date is in the future",
                    code="future_publication_date",
                )
            )

        if published and expires and expires < published:
            issues.append(
                ValidationIssue(
                    field="expiration_date",
                    severity=Severity.ERROR,
                    message="Expiration date is before publication date",
                    code="expiration_before_publication",
                )
            )

        if deadline:
            if published and deadline < published:
                issues.append(
                    ValidationIssue(
                        field="application_details.deadline",
                        severity=Severity.WARNING,
                        message="Application deadline is before publication date",
                        code="deadline_before_publication",
                    )
                )
            if deadline < now:
                issues.append(
                    ValidationIssue(
                        field="application_details.deadline",
                        severity=Severity.INFO,
                        message="Application deadline has passed",
                        code="deadline_in_past",
                    )
                )

        return issues
