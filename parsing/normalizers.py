"""Taxonomy normalization and scoring for canonical job records.

Everything here is deterministic: the same record always normalizes to the
same output. Lookup tables are module constants; scoring weights come from
a ScoringPolicy.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

import structlog
from bs4 import BeautifulSoup

from core.ids import is_relative_url, resolve_url
from schemas.config import ScoringPolicy
from schemas.job import CanonicalJob, JobLocation, Requirement

logger = structlog.get_logger()

# Listing boilerplate in front of titles. Multi-word phrases may omit the
# colon; single words need one ("Hiring Manager" is a real title).
_TITLE_PREFIX_RE = re.compile(
    r"^\s*(?:"
    r"(?:looking for|now hiring|we need an?|join us as an?|position available)\b\s*:?"
    r"|(?:hiring|seeking|job|position|vacancy|opening)\s*:"
    r")\s*",
    re.IGNORECASE,
)

_LEGAL_SUFFIX_RE = re.compile(
    r"\s+(ab|inc\.?|llc\.?|ltd\.?|gmbh)(\s*\(publ\))?$", re.IGNORECASE
)
LEGAL_SUFFIXES = {
    "ab": "AB",
    "inc": "Inc.",
    "llc": "LLC",
    "ltd": "Ltd",
    "gmbh": "GmbH",
}

CITY_ALIASES = {
    "stockholm city": "Stockholm",
    "sthlm": "Stockholm",
    "göteborg": "Gothenburg",
    "goteborg": "Gothenburg",
    "gbg": "Gothenburg",
    "malmoe": "Malmö",
    "malmo": "Malmö",
}

MUNICIPALITY_CODES = {
    "0180": "Stockholm",
    "0380": "Uppsala",
    "0580": "Linköping",
    "0581": "Norrköping",
    "0680": "Jönköping",
    "1280": "Malmö",
    "1281": "Lund",
    "1283": "Helsingborg",
    "1480": "Gothenburg",
    "1880": "Örebro",
    "1980": "Västerås",
    "2480": "Umeå",
}

# (synonym, canonical); first substring match wins
EMPLOYMENT_TYPES = [
    ("internship", "Internship"),
    ("praktik", "Internship"),
    ("summer job", "Seasonal"),
    ("sommarjobb", "Seasonal"),
    ("seasonal", "Seasonal"),
    ("project", "Project"),
    ("temporary", "Temporary"),
    ("contract", "Temporary"),
    ("visstid", "Temporary"),
    ("tidsbegränsad", "Temporary"),
    ("permanent", "Permanent"),
    ("tillsvidare", "Permanent"),
]

WORKING_HOURS_TYPES = [
    ("part-time", "Part-time"),
    ("part time", "Part-time"),
    ("deltid", "Part-time"),
    ("full-time", "Full-time"),
    ("full time", "Full-time"),
    ("heltid", "Full-time"),
    ("flexible", "Flexible"),
    ("flexibel", "Flexible"),
]

TECH_NAMES = {
    "javascript": "JavaScript",
    "typescript": "TypeScript",
    "react.js": "React",
    "react js": "React",
    "reactjs": "React",
    "nodejs": "Node.js",
    "node.js": "Node.js",
    "node js": "Node.js",
    "vue.js": "Vue",
    "vuejs": "Vue",
    "c#.net": "C#",
    "postgres": "PostgreSQL",
    "postgresql": "PostgreSQL",
    "mongo": "MongoDB",
    "mongodb": "MongoDB",
    "ms sql": "Microsoft SQL Server",
}

_SKILL_PREFIX_RE = re.compile(
    r"^(?:knowledge of|experience (?:with|in)|familiarity with|skills? in|proficiency in)\s+",
    re.IGNORECASE,
)
_SKILL_SUFFIX_RE = re.compile(r"\s+(?:skills?|knowledge|experience)$", re.IGNORECASE)

SHORT_TERM_EMPLOYMENT = ("temp", "summer", "season")
SHORT_TERM_DURATION = ("month", "week", "månad", "vecka")
NO_EXPERIENCE_PHRASES = ("no experience", "no prior experience", "ingen erfarenhet")


def clean_text(text: str) -> str:
    """Collapse whitespace and remove null bytes."""
    text = text.replace("\x00", "")
    return re.sub(r"\s+", " ", text).strip()


def strip_html(text: str | None) -> str | None:
    """Drop tags and collapse whitespace."""
    if text is None:
        return None
    if "<" in text:
        text = BeautifulSoup(text, "lxml").get_text(" ")
    return clean_text(text)


def title_case(text: str) -> str:
    """Upper-case the first letter of every word, leaving the rest alone."""
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


def normalize_title(title: str) -> str:
    title = clean_text(title)
    title = _TITLE_PREFIX_RE.sub("", title, count=1)
    return title_case(title)


def normalize_company_name(name: str) -> str:
    name = clean_text(name)

    def _suffix(match: re.Match[str]) -> str:
        canonical = LEGAL_SUFFIXES[match.group(1).rstrip(".").lower()]
        return f" {canonical}" + (" (publ)" if match.group(2) else "")

    return _LEGAL_SUFFIX_RE.sub(_suffix, name)


def normalize_city(city: str | None) -> str | None:
    if not city:
        return None
    city = clean_text(city)
    return CITY_ALIASES.get(city.lower(), city) or None


def city_from_municipality_code(code: str | None) -> str | None:
    if not code:
        return None
    code = code.strip()
    if code.isdigit():
        code = code.zfill(4)
    return MUNICIPALITY_CODES.get(code)


def normalize_location(location: JobLocation) -> JobLocation:
    location = location.model_copy()
    location.city = normalize_city(location.city)
    if location.city is None:
        code = location.municipality_code
        if code is None and location.municipality and location.municipality.isdigit():
            code = location.municipality
        location.city = city_from_municipality_code(code)
    return location


def _match_vocabulary(value: str | None, vocabulary: list[tuple[str, str]]) -> str | None:
    if not value:
        return value
    low = value.lower()
    for synonym, canonical in vocabulary:
        if synonym in low:
            return canonical
    return clean_text(value)


def normalize_employment_type(value: str | None) -> str | None:
    """Map to Permanent/Temporary/Seasonal/Project/Internship; unknown text is kept."""
    return _match_vocabulary(value, EMPLOYMENT_TYPES)


def normalize_working_hours(value: str | None) -> str | None:
    """Map to Full-time/Part-time/Flexible; unknown text is kept."""
    return _match_vocabulary(value, WORKING_HOURS_TYPES)


def normalize_skill_name(name: str) -> str:
    name = clean_text(name)
    name = _SKILL_PREFIX_RE.sub("", name)
    name = _SKILL_SUFFIX_RE.sub("", name).strip()
    return TECH_NAMES.get(name.lower(), name)


def normalize_skills(skills: Iterable[Requirement]) -> list[Requirement]:
    """Deduplicate case-insensitively; required wins over optional."""
    merged: dict[str, Requirement] = {}
    for skill in skills:
        name = normalize_skill_name(skill.name)
        if not name:
            continue
        key = name.lower()
        existing = merged.get(key)
        if existing is None:
            merged[key] = Requirement(name=name, required=skill.required)
        elif skill.required and not existing.required:
            existing.required = True
    return list(merged.values())


def _keyword_hits(text: str, keywords: list[str]) -> int:
    return sum(
        1 for kw in keywords if re.search(rf"(?<!\w){re.escape(kw)}(?!\w)", text)
    )


def student_relevance_score(job: CanonicalJob, policy: ScoringPolicy) -> float:
    """0-100 score of how suitable a job is for students."""
    title = job.title.lower()
    description = job.description.lower()

    raw = _keyword_hits(title, policy.relevance_keywords) * policy.title_keyword_weight
    raw += (
        _keyword_hits(description, policy.relevance_keywords)
        * policy.description_keyword_weight
    )

    hours = (job.working_hours_type or "").lower()
    if "part" in hours or "deltid" in hours:
        raw += policy.part_time_bonus

    employment = (job.employment_type or "").lower()
    duration = (job.duration or "").lower()
    if any(s in employment for s in SHORT_TERM_EMPLOYMENT) or any(
        s in duration for s in SHORT_TERM_DURATION
    ):
        raw += policy.short_term_bonus

    if any(phrase in description for phrase in NO_EXPERIENCE_PHRASES):
        raw += policy.no_experience_bonus

    if policy.relevance_max_raw <= 0:
        return 0.0
    return round(min(100.0, raw / policy.relevance_max_raw * 100), 2)


def quality_score(job: CanonicalJob, policy: ScoringPolicy, relevance: float) -> float:
    """Additive 0-100 completeness score."""
    score = 0.0

    if job.title:
        length = len(job.title)
        if policy.title_long_min < length < policy.title_long_max:
            score += policy.title_long_points
        elif length > policy.title_medium_min:
            score += policy.title_medium_points
        else:
            score += policy.title_short_points

    if job.description:
        length = len(job.description)
        for bound, points in policy.description_bands:
            if length > bound:
                score += points
                break
        else:
            score += policy.description_min_points

    company = job.company
    if company.name:
        score += policy.company_name_points
    if company.website:
        score += policy.company_website_points
    if company.email or company.phone:
        score += policy.company_contact_points

    location = job.location
    if location.city:
        score += policy.location_city_points
    if location.address:
        score += policy.location_address_points
    if location.coordinates:
        score += policy.location_coordinates_points

    application = job.application_details
    if application.url or application.email:
        score += policy.application_contact_points
    if application.deadline:
        score += policy.application_deadline_points

    score += min(len(job.skills) * policy.points_per_skill, policy.max_skill_points)

    if policy.relevance_divisor > 0:
        score += min(relevance / policy.relevance_divisor, policy.max_relevance_points)

    return round(max(0.0, min(100.0, score)), 2)


class TaxonomyNormalizer:
    """Applies all normalizations and recomputes derived scores."""

    def __init__(
        self,
        policy: ScoringPolicy | None = None,
        base_urls: dict[str, str] | None = None,
    ):
        self.policy = policy or ScoringPolicy()
        self.base_urls = dict(base_urls or {})

    def register_base_url(self, source: str, base_url: str) -> None:
        self.base_urls[source] = base_url

    def resolve_source_url(self, source: str, url: str | None) -> str | None:
        """Resolve a relative URL against the source's base; unknown sources are left as-is."""
        if not url or not is_relative_url(url):
            return url
        base_url = self.base_urls.get(source)
        if base_url is None:
            logger.warning("No base URL for source", source=source, url=url)
            return url
        return resolve_url(base_url, url)

    def transform(self, job: CanonicalJob) -> CanonicalJob:
        """Return a normalized copy of job with fresh scores."""
        job = job.model_copy(deep=True)

        job.title = normalize_title(job.title)
        job.company.name = normalize_company_name(job.company.name)
        job.location = normalize_location(job.location)
        job.employment_type = normalize_employment_type(job.employment_type)
        job.working_hours_type = normalize_working_hours(job.working_hours_type)
        job.description = strip_html(job.description) or ""
        job.requirements = strip_html(job.requirements)
        job.skills = normalize_skills(job.skills)

        job.source_url = self.resolve_source_url(job.source, job.source_url) or ""
        job.application_details.url = self.resolve_source_url(
            job.source, job.application_details.url
        )

        relevance = student_relevance_score(job, self.policy)
        job.metadata["student_relevance_score"] = relevance
        job.quality_score = quality_score(job, self.policy, relevance)
        return job
