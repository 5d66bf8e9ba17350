"""Scraper-backed source adapter driven by CSS selectors."""

from __future__ import annotations

import asyncio
import time
from typing import Any, ClassVar

import httpx
import structlog
from bs4 import BeautifulSoup

from collectors.base import SourceAdapter
from collectors.http_client import DEFAULT_USER_AGENT, HttpClient, Sleep
from core.errors import TransientHTTPError
from core.ids import last_path_segment, resolve_url, structure_hash
from evidence.snapshot import FingerprintStore
from orchestration.notifier import NotificationSink
from parsing.change_detector import ChangeDetector
from parsing.structure import parse_html
from schemas.base import Severity, utcnow
from schemas.changes import ChangeDetectionResult, ChangeStatus, Impact, StructuralChange
from schemas.config import PaginationType, ScraperSourceConfig, SourceKind
from schemas.job import (
    ApplicationDetails,
    CanonicalJob,
    CompanyInfo,
    JobLocation,
    Requirement,
)
from schemas.result import CollectionResult, CollectionStatus

logger = structlog.get_logger()


class ScraperSourceAdapter(SourceAdapter):
    """Scrapes a listing page, follows detail links and extracts fields.

    Field extraction is split into small ``parse_*`` hooks so that
    site-specific subclasses only override what differs.
    """

    kind: ClassVar[SourceKind] = SourceKind.SCRAPER

    def __init__(
        self,
        config: ScraperSourceConfig,
        *,
        fingerprint_store: FingerprintStore,
        notifier: NotificationSink | None = None,
        client: HttpClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str | None = DEFAULT_USER_AGENT,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self._sleep = sleep
        scraper = config.scraper
        self.client = client or HttpClient(
            timeout=config.timeout_seconds,
            requests_per_minute=config.rate_limit_per_minute,
            retry_policy=config.retry,
            user_agent=user_agent if scraper.use_user_agent else None,
            headers=scraper.headers,
            transport=transport,
            sleep=sleep,
        )
        self.change_detector = ChangeDetector(
            config.id, scraper, fingerprint_store, notifier
        )
        self._initialized = False

    def apply_config(self, config: ScraperSourceConfig) -> None:
        super().apply_config(config)
        self.client.configure(
            timeout=config.timeout_seconds,
            requests_per_minute=config.rate_limit_per_minute,
            retry_policy=config.retry,
        )
        self.change_detector.settings = config.scraper

    async def initialize(self) -> None:
        await self.client.open()
        self._initialized = True
        logger.info(
            "Adapter initialized",
            source_id=self.source_id,
            listing_url=self.config.scraper.listing_url,
        )

    async def close(self) -> None:
        await self.client.close()
        self._initialized = False

    # --- Listing pages ---

    def page_url(self, page: int) -> str:
        """URL of listing page ``page`` (1-based)."""
        scraper = self.config.scraper
        pagination = scraper.pagination
        if page <= 1 or pagination is None:
            return scraper.listing_url

        if pagination.type == PaginationType.URL and pagination.url_pattern:
            return resolve_url(scraper.base_url, pagination.url_pattern.format(page=page))

        url = httpx.URL(scraper.listing_url).copy_merge_params(
            {pagination.param_name: str(page)}
        )
        return str(url)

    def extract_job_urls(self, html: str) -> list[str]:
        """Absolute detail-page URLs found on a listing page, in page order."""
        scraper = self.config.scraper
        soup = parse_html(html)
        urls: list[str] = []
        for item in soup.select(scraper.listing_selector):
            link = item.select_one(scraper.detail_link_selector)
            href = link.get("href") if link else None
            if href:
                urls.append(resolve_url(scraper.base_url, str(href)))
        return urls

    async def collect_job_urls(self, result: CollectionResult) -> list[str]:
        """Walk listing pages and return unique detail URLs.

        The first page must load; later page failures are recorded and
        skipped.
        """
        scraper = self.config.scraper
        first_page = await self.client.get_text(self.page_url(1))
        urls = dict.fromkeys(self.extract_job_urls(first_page))

        max_pages = scraper.pagination.max_pages if scraper.pagination else 1
        for page in range(2, max_pages + 1):
            if scraper.page_delay_ms:
                await self._sleep(scraper.page_delay_ms / 1000)

            url = self.page_url(page)
            try:
                html = await self.client.get_text(url)
            except (httpx.HTTPError, TransientHTTPError) as e:
                result.add_error(
                    "page_fetch_error",
                    f"Failed to fetch listing page {page}: {e}",
                    url=url,
                    page=page,
                )
                logger.warning(
                    "Listing page failed", source_id=self.source_id, page=page, error=str(e)
                )
                continue

            page_urls = self.extract_job_urls(html)
            if not page_urls:
                break
            urls.update(dict.fromkeys(page_urls))

        return list(urls)

    # --- Detail pages ---

    @staticmethod
    def select_text(soup: BeautifulSoup, selector: str | None) -> str | None:
        if not selector:
            return None
        element = soup.select_one(selector)
        if element is None:
            return None
        text = element.get_text(" ", strip=True)
        return text or None

    def parse_location(self, text: str | None) -> JobLocation:
        return JobLocation(city=text) if text else JobLocation()

    def parse_deadline(self, text: str | None) -> Any:
        return text

    def parse_job_type(self, text: str | None) -> dict[str, str | None]:
        """Split free text into employment_type / working_hours_type / duration."""
        return {"employment_type": text}

    def parse_skills(self, soup: BeautifulSoup) -> list[Requirement]:
        return []

    def default_company(self) -> str:
        return ""

    def parse_detail(self, url: str, soup: BeautifulSoup) -> CanonicalJob:
        """Build a CanonicalJob from a detail page.

        Raises:
            ValueError: When the page has no title.
        """
        fields = self.config.scraper.fields

        title = self.select_text(soup, fields.title)
        if not title:
            raise ValueError("title selector matched nothing")

        description_el = soup.select_one(fields.description) if fields.description else None
        description = description_el.get_text("\n", strip=True) if description_el else ""

        application_url = url
        if fields.application_url:
            link = soup.select_one(fields.application_url)
            if link is not None and link.get("href"):
                application_url = resolve_url(self.config.scraper.base_url, str(link["href"]))

        return CanonicalJob(
            external_id=last_path_segment(url) or structure_hash(url)[:16],
            source=self.source_id,
            source_url=url,
            title=title,
            description=description,
            description_formatted=description_el.decode_contents() if description_el else None,
            company=CompanyInfo(
                name=self.select_text(soup, fields.company) or self.default_company()
            ),
            location=self.parse_location(self.select_text(soup, fields.location)),
            application_details=ApplicationDetails(
                url=application_url,
                deadline=self.parse_deadline(self.select_text(soup, fields.deadline)),
            ),
            skills=self.parse_skills(soup),
            publication_date=utcnow(),
            **self.parse_job_type(self.select_text(soup, fields.job_type)),
        )

    async def scrape_job(self, url: str) -> CanonicalJob:
        html = await self.client.get_text(url)
        started = time.monotonic()
        job = self.parse_detail(url, parse_html(html))
        job.collecting_metadata.processing_time_ms = (time.monotonic() - started) * 1000
        job.collecting_metadata.source_version = self.version
        return job

    # --- Adapter contract ---

    async def test_connection(self) -> bool:
        try:
            await self.client.open()
            fetched = await self.client.fetch(self.config.scraper.listing_url)
        except Exception as e:
            logger.warning("Connection test failed", source_id=self.source_id, error=str(e))
            return False

        if fetched.status_code != 200:
            logger.warning(
                "Connection test failed",
                source_id=self.source_id,
                status_code=fetched.status_code,
                error=fetched.error,
            )
            return False

        matches = len(parse_html(fetched.content).select(self.config.scraper.listing_selector))
        if matches == 0:
            logger.warning("Listing selector matched nothing", source_id=self.source_id)
        return matches > 0

    async def detect_structural_changes(self) -> ChangeDetectionResult:
        await self.client.open()
        fetched = await self.client.fetch(self.config.scraper.listing_url)
        if not fetched.success:
            message = f"Listing page unavailable (HTTP {fetched.status_code})"
            if fetched.error:
                message += f": {fetched.error}"
            return ChangeDetectionResult(
                source_id=self.source_id,
                status=ChangeStatus.ERROR,
                can_adapt_automatically=False,
                changes=[
                    StructuralChange(
                        element_type="page",
                        path=fetched.url,
                        impact=Impact.HIGH,
                        message=message,
                    )
                ],
            )
        return await self.change_detector.detect(fetched.text)

    async def collect(self) -> CollectionResult:
        if not self._initialized:
            await self.initialize()

        started = time.monotonic()
        result = CollectionResult(source_id=self.source_id)
        scraper = self.config.scraper

        try:
            urls = await self.collect_job_urls(result)
        except Exception as e:
            result.add_error(
                "listing_fetch_error",
                f"Failed to load listing page: {e}",
                Severity.CRITICAL,
                url=scraper.listing_url,
            )
            result.status = CollectionStatus.FAILURE
            result.duration_ms = (time.monotonic() - started) * 1000
            logger.error("Listing fetch failed", source_id=self.source_id, error=str(e))
            return result

        result.jobs_collected = len(urls)
        semaphore = asyncio.Semaphore(self.config.concurrency_limit)

        async def process(url: str) -> CanonicalJob | None:
            async with semaphore:
                try:
                    return await self.scrape_job(url)
                except Exception as e:
                    result.add_error(
                        "job_extraction_error",
                        f"Failed to extract job: {e}",
                        url=url,
                    )
                    logger.warning(
                        "Job extraction failed",
                        source_id=self.source_id,
                        url=url,
                        error=str(e),
                    )
                    return None
                finally:
                    if scraper.request_delay_ms:
                        await self._sleep(scraper.request_delay_ms / 1000)

        jobs = await asyncio.gather(*(process(url) for url in urls))
        result.jobs = [job for job in jobs if job is not None]

        result.settle_status()
        result.duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "Collection finished",
            source_id=self.source_id,
            status=result.status.value,
            urls=len(urls),
            jobs=len(result.jobs),
            errors=len(result.errors),
        )
        return result
