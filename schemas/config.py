"""Configuration file schemas."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator

from .base import BaseSchema


# --- Schedules & retries ---


FREQUENCY_CRON = {
    "hourly": "0 * * * *",
    "daily": "0 0 * * *",
    "weekly": "0 0 * * 1",
}


class ScheduleConfig(BaseSchema):
    """Frequency label or explicit cron expression."""

    frequency: str = "daily"
    cron: str | None = None

    @property
    def expression(self) -> str:
        """Cron expression to register; unknown frequencies fall back to daily."""
        if self.cron:
            return self.cron
        return FREQUENCY_CRON.get(self.frequency.lower(), FREQUENCY_CRON["daily"])


class RetryPolicy(BaseSchema):
    """Exponential backoff: delay = initial_delay * backoff_factor ** attempt."""

    max_retries: int = Field(default=3, ge=0)
    initial_delay_ms: int = Field(default=1000, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)

    def delay_seconds(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return self.initial_delay_ms * self.backoff_factor**attempt / 1000


# --- API sources ---


class OAuthSettings(BaseSchema):
    """OAuth client-credentials grant."""

    client_id: str | None = None
    client_secret: str | None = None
    token_url: str
    scope: str | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


class ApiSettings(BaseSchema):
    """Settings specific to API-backed sources."""

    base_url: str
    search_path: str = "/search"
    oauth: OAuthSettings | None = None
    page_size: int = Field(default=100, ge=1)
    max_pages: int = Field(default=50, ge=1)
    request_delay_ms: int = Field(default=500, ge=0)
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)


# --- Scraper sources ---


class PaginationType(StrEnum):
    PARAM = "param"
    URL = "url"


class PaginationConfig(BaseSchema):
    """How to reach listing pages 2..max_pages."""

    type: PaginationType = PaginationType.PARAM
    param_name: str = "page"
    url_pattern: str | None = None
    max_pages: int = Field(default=5, ge=1)

    @field_validator("url_pattern")
    @classmethod
    def _pattern_has_placeholder(cls, v: str | None) -> str | None:
        if v is not None and "{page}" not in v:
            raise ValueError("url_pattern must contain '{page}'")
        return v


class FieldSelectors(BaseSchema):
    """CSS selectors for fields on a detail page."""

    title: str | None = None
    company: str | None = None
    location: str | None = None
    description: str | None = None
    application_url: str | None = None
    deadline: str | None = None
    job_type: str | None = None

    def configured(self) -> dict[str, str]:
        """Mapping of field name to selector for the selectors that are set."""
        return {k: v for k, v in self.model_dump().items() if v}


class ScraperSettings(BaseSchema):
    """Settings specific to scraped sources."""

    base_url: str
    listing_path: str = "/"
    listing_selector: str
    detail_link_selector: str
    pagination: PaginationConfig | None = None
    fields: FieldSelectors = Field(default_factory=FieldSelectors)
    headers: dict[str, str] = Field(default_factory=dict)
    use_user_agent: bool = True
    request_delay_ms: int = Field(default=200, ge=0)
    page_delay_ms: int = Field(default=1000, ge=0)

    @property
    def listing_url(self) -> str:
        return self.base_url.rstrip("/") + "/" + self.listing_path.lstrip("/")


# --- Sources ---


class SourceKind(StrEnum):
    API = "api"
    SCRAPER = "scraper"


class _SourceConfigBase(BaseSchema):
    id: str = Field(..., min_length=1)
    name: str
    adapter: str | None = Field(
        default=None, description="Adapter registry key; defaults per kind"
    )
    enabled: bool = True
    priority: int = 0
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    concurrency_limit: int = Field(default=5, ge=1)
    rate_limit_per_minute: float = Field(default=60, ge=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    timeout_seconds: float = Field(default=30, gt=0)


class ApiSourceConfig(_SourceConfigBase):
    kind: Literal["api"] = "api"
    api: ApiSettings


class ScraperSourceConfig(_SourceConfigBase):
    kind: Literal["scraper"] = "scraper"
    scraper: ScraperSettings


SourceConfig = Annotated[
    ApiSourceConfig | ScraperSourceConfig, Field(discriminator="kind")
]


# --- Scoring policy ---


class ScoringPolicy(BaseSchema):
    """Weights for quality and student-relevance scoring.

    Defaults reproduce the historical heuristics; every value is policy.
    """

    # Title length bands
    title_long_min: int = 20
    title_long_max: int = 100
    title_long_points: float = 15
    title_medium_min: int = 10
    title_medium_points: float = 10
    title_short_points: float = 5

    # Description length bands: (exclusive lower bound, points), longest first
    description_bands: list[tuple[int, float]] = Field(
        default_factory=lambda: [(500, 30), (200, 20), (100, 10)]
    )
    description_min_points: float = 5

    company_name_points: float = 3
    company_website_points: float = 3
    company_contact_points: float = 4

    location_city_points: float = 5
    location_address_points: float = 3
    location_coordinates_points: float = 2

    application_contact_points: float = 10
    application_deadline_points: float = 5

    points_per_skill: float = 2
    max_skill_points: float = 10

    relevance_divisor: float = 10
    max_relevance_points: float = 10

    # Student relevance
    relevance_keywords: list[str] = Field(
        default_factory=lambda: [
            "student",
            "internship",
            "intern",
            "trainee",
            "part-time",
            "extra",
            "junior",
        ]
    )
    title_keyword_weight: float = 2
    description_keyword_weight: float = 1
    part_time_bonus: float = 2
    short_term_bonus: float = 2
    no_experience_bonus: float = 2
    relevance_max_raw: float = 10


class SourcesFile(BaseSchema):
    """Schema for sources.yaml."""

    sources: list[SourceConfig] = Field(default_factory=list)
    scoring: ScoringPolicy = Field(default_factory=ScoringPolicy)
