"""Canonical job record produced by every source adapter."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from .base import BaseSchema, LenientDatetime, utcnow
from .validation import ValidationIssue


class CompanyInfo(BaseSchema):
    """Employer details."""

    name: str = ""
    organization_number: str | None = None
    website: str | None = None
    email: str | None = None
    phone: str | None = None


class JobLocation(BaseSchema):
    """Where the job is performed."""

    city: str | None = None
    municipality: str | None = None
    municipality_code: str | None = None
    region: str | None = None
    country: str | None = None
    address: str | None = None
    postal_code: str | None = None
    coordinates: tuple[float, float] | None = Field(
        default=None, description="(latitude, longitude)"
    )


class ApplicationDetails(BaseSchema):
    """How to apply."""

    email: str | None = None
    url: str | None = None
    reference: str | None = None
    instructions: str | None = None
    deadline: LenientDatetime = None


class TaxonomyRef(BaseSchema):
    """Id + name pair from a source taxonomy."""

    id: str | None = None
    name: str


class Requirement(BaseSchema):
    """A skill or education requirement."""

    name: str
    required: bool = False


class LanguageRequirement(Requirement):
    """A language requirement with optional proficiency."""

    level: str | None = None


class CollectingMetadata(BaseSchema):
    """Provenance recorded by the adapter that produced the record."""

    collected_at: datetime = Field(default_factory=utcnow)
    processing_time_ms: float = 0.0
    source_version: str = "1.0"
    validation_issues: list[ValidationIssue] = Field(default_factory=list)


class CanonicalJob(BaseSchema):
    """Source-independent job listing.

    ``(source, external_id)`` is the natural key used for upserts and exact
    deduplication. Fields are permissive on purpose: missing or malformed
    values are reported by the SchemaValidator rather than rejected here.
    """

    # Identity
    external_id: str = ""
    source: str = ""
    source_url: str = ""

    # Content
    title: str = ""
    description: str = ""
    description_formatted: str | None = None
    requirements: str | None = None

    company: CompanyInfo = Field(default_factory=CompanyInfo)
    location: JobLocation = Field(default_factory=JobLocation)
    application_details: ApplicationDetails = Field(default_factory=ApplicationDetails)

    # Classification
    employment_type: str | None = None
    working_hours_type: str | None = None
    duration: str | None = None
    salary: str | None = None
    occupation: TaxonomyRef | None = None
    occupation_group: TaxonomyRef | None = None
    occupation_field: TaxonomyRef | None = None

    # Relations
    skills: list[Requirement] = Field(default_factory=list)
    education_requirements: list[Requirement] = Field(default_factory=list)
    languages: list[LanguageRequirement] = Field(default_factory=list)

    # Temporal
    publication_date: LenientDatetime = None
    last_publication_date: LenientDatetime = None
    expiration_date: LenientDatetime = None

    # Derived
    quality_score: float = Field(default=0.0, ge=0, le=100)
    metadata: dict[str, Any] = Field(default_factory=dict)
    collecting_metadata: CollectingMetadata = Field(default_factory=CollectingMetadata)

    @property
    def key(self) -> tuple[str, str]:
        """Natural key ``(source, external_id)``."""
        return (self.source, self.external_id)

    def summary(self) -> dict[str, Any]:
        """Small payload used when recording a run to the result log."""
        return {
            "external_id": self.external_id,
            "title": self.title,
            "source": self.source,
            "company": self.company.name,
            "city": self.location.city or self.location.municipality,
            "collecting_metadata": self.collecting_metadata.model_dump(mode="json"),
        }
