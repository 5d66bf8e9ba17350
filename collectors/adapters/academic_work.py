"""Academic Work (academicwork.se) scraper."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

from collectors.scraper import ScraperSourceAdapter
from schemas.job import JobLocation, Requirement

_LOCATION_RE = re.compile(r"Location:\s*(.*)", re.IGNORECASE)
_DEADLINE_RE = re.compile(r"Application deadline:\s*(.*)", re.IGNORECASE)
_JOB_TYPE_RE = re.compile(r"Job type:\s*(.*)", re.IGNORECASE)

REQUIRED_HEADINGS = ("requirements", "qualifications")
OPTIONAL_HEADINGS = ("merits", "nice to have")


class AcademicWorkScraper(ScraperSourceAdapter):
    """Detail pages carry labelled text lines and Requirements/Merits lists.

    Example lines: ``Location: Stockholm City, Stockholm``,
    ``Application deadline: 2024-12-31``, ``Job type: Full-time, Temporary``.
    """

    def default_company(self) -> str:
        return "Academic Work"

    def parse_location(self, text: str | None) -> JobLocation:
        match = _LOCATION_RE.search(text or "")
        if not match:
            return JobLocation()
        parts = [part.strip() for part in match.group(1).split(",") if part.strip()]
        return JobLocation(
            city=parts[0] if parts else None,
            region=parts[1] if len(parts) > 1 else None,
        )

    def parse_deadline(self, text: str | None) -> str | None:
        match = _DEADLINE_RE.search(text or "")
        return match.group(1).strip() if match else None

    def parse_job_type(self, text: str | None) -> dict[str, str | None]:
        parsed: dict[str, str | None] = {
            "employment_type": None,
            "working_hours_type": None,
            "duration": None,
        }
        match = _JOB_TYPE_RE.search(text or "")
        if not match:
            return parsed

        for part in (p.strip() for p in match.group(1).split(",")):
            low = part.lower()
            if low in ("full-time", "part-time"):
                parsed["working_hours_type"] = part
            elif low in ("permanent", "temporary", "contract"):
                parsed["employment_type"] = part
            elif any(unit in low for unit in ("month", "year", "week")):
                parsed["duration"] = part
        return parsed

    def parse_skills(self, soup: BeautifulSoup) -> list[Requirement]:
        skills: list[Requirement] = []
        for heading in soup.select(".job-detail-description h2"):
            label = heading.get_text(strip=True).lower()
            if any(h in label for h in REQUIRED_HEADINGS):
                required = True
            elif any(h in label for h in OPTIONAL_HEADINGS):
                required = False
            else:
                continue

            items = heading.find_next_sibling()
            if not isinstance(items, Tag) or items.name != "ul":
                continue
            for li in items.find_all("li"):
                name = li.get_text(" ", strip=True)
                if name:
                    skills.append(Requirement(name=name, required=required))
        return skills
