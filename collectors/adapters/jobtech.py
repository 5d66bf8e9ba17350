"""JobTech (Arbetsförmedlingen) job search API adapter."""

from __future__ import annotations

from typing import Any

from collectors.api import ApiPage, ApiSourceAdapter
from schemas.job import (
    ApplicationDetails,
    CanonicalJob,
    CompanyInfo,
    JobLocation,
    LanguageRequirement,
    Requirement,
    TaxonomyRef,
)

JOBTECH_BASE_URL = "https://jobsearch.api.jobtechdev.se"
JOBTECH_TOKEN_URL = (
    "https://auth.jobtechdev.se/auth/realms/jobtech/protocol/openid-connect/token"
)
PLATSBANKEN_AD_URL = "https://arbetsformedlingen.se/platsbanken/annonser/{id}"


class JobTechAdapter(ApiSourceAdapter):
    """Collects ads from the JobTech ``/search`` endpoint."""

    version = "1.0"

    def page_params(self, offset: int, limit: int) -> dict[str, Any]:
        params = super().page_params(offset, limit)
        params.setdefault("sort", "pubdate-desc")
        return params

    def parse_page(self, payload: dict[str, Any]) -> ApiPage:
        total = (payload.get("total") or {}).get("value")
        return ApiPage(
            total=int(total) if total is not None else None,
            hits=list(payload.get("hits") or []),
        )

    def map_record(self, raw: dict[str, Any]) -> CanonicalJob:
        return map_jobtech_ad(raw, source=self.source_id)


def _label(item: dict[str, Any] | None) -> str | None:
    return item.get("label") if item else None


def _taxonomy(item: dict[str, Any] | None) -> TaxonomyRef | None:
    if not item or not item.get("label"):
        return None
    return TaxonomyRef(id=item.get("concept_id"), name=item["label"])


def _requirements(ad: dict[str, Any], key: str) -> list[Requirement]:
    items: list[Requirement] = []
    for section, required in (("must_have", True), ("nice_to_have", False)):
        for item in (ad.get(section) or {}).get(key) or []:
            if item.get("label"):
                items.append(Requirement(name=item["label"], required=required))
    return items


def _languages(ad: dict[str, Any]) -> list[LanguageRequirement]:
    items: list[LanguageRequirement] = []
    for section, required in (("must_have", True), ("nice_to_have", False)):
        for item in (ad.get(section) or {}).get("languages") or []:
            if item.get("label"):
                items.append(
                    LanguageRequirement(
                        name=item["label"],
                        level=_label(item.get("language_level")),
                        required=required,
                    )
                )
    return items


def map_jobtech_ad(ad: dict[str, Any], source: str = "jobtech") -> CanonicalJob:
    """Map a JobTech ad to a CanonicalJob.

    JobTech coordinates are ``[longitude, latitude]``; they are swapped to
    ``(latitude, longitude)``.
    """
    ad_id = str(ad["id"])
    employer = ad.get("employer") or {}
    description = ad.get("description") or {}
    address = ad.get("workplace_address") or {}
    application = ad.get("application_details") or {}

    coordinates = address.get("coordinates")
    if coordinates and len(coordinates) == 2 and None not in coordinates:
        coordinates = (coordinates[1], coordinates[0])
    else:
        coordinates = None

    return CanonicalJob(
        external_id=ad_id,
        source=source,
        source_url=PLATSBANKEN_AD_URL.format(id=ad_id),
        title=ad.get("headline") or "",
        description=description.get("text") or "",
        description_formatted=description.get("text_formatted"),
        requirements=description.get("requirements"),
        company=CompanyInfo(
            name=employer.get("name") or "",
            organization_number=employer.get("organization_number"),
            website=employer.get("url"),
            email=employer.get("email"),
            phone=employer.get("phone_number"),
        ),
        location=JobLocation(
            city=address.get("city"),
            municipality=address.get("municipality"),
            municipality_code=address.get("municipality_code"),
            region=address.get("region"),
            country=address.get("country"),
            address=address.get("street_address"),
            postal_code=address.get("postcode"),
            coordinates=coordinates,
        ),
        application_details=ApplicationDetails(
            email=application.get("email"),
            url=application.get("url"),
            reference=application.get("reference"),
            instructions=application.get("information"),
            deadline=ad.get("application_deadline"),
        ),
        employment_type=_label(ad.get("employment_type")),
        working_hours_type=_label(ad.get("working_hours_type")),
        duration=_label(ad.get("duration")),
        salary=ad.get("salary_description"),
        occupation=_taxonomy(ad.get("occupation")),
        occupation_group=_taxonomy(ad.get("occupation_group")),
        occupation_field=_taxonomy(ad.get("occupation_field")),
        skills=_requirements(ad, "skills"),
        education_requirements=_requirements(ad, "education"),
        languages=_languages(ad),
        publication_date=ad.get("publication_date"),
        last_publication_date=ad.get("last_publication_date"),
        expiration_date=ad.get("removed_date"),
        metadata={
            "experience_required": ad.get("experience_required"),
            "scope_of_work": ad.get("scope_of_work"),
            "access": ad.get("access"),
            "number_of_vacancies": ad.get("number_of_vacancies"),
            "ad_source_type": ad.get("source_type"),
            "salary_type": _label(ad.get("salary_type")),
        },
    )
