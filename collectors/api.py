"""API-backed source adapters: OAuth token cache and offset pagination."""

from __future__ import annotations

import asyncio
import time
from abc import abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx
import structlog

from collectors.base import SourceAdapter
from collectors.http_client import HttpClient, Sleep
from core.errors import AuthenticationError, ConfigurationError, TransientHTTPError
from schemas.base import Severity
from schemas.changes import ChangeDetectionResult, ChangeStatus
from schemas.config import ApiSourceConfig, SourceKind
from schemas.job import CanonicalJob
from schemas.result import CollectionResult, CollectionStatus

logger = structlog.get_logger()

# Refresh the cached token when less than this many seconds remain
TOKEN_REFRESH_MARGIN_SECONDS = 60.0


@dataclass
class ApiPage:
    """One page of search results."""

    total: int | None
    hits: list[dict[str, Any]] = field(default_factory=list)


class ApiSourceAdapter(SourceAdapter):
    """Base adapter for JSON search APIs paginated by offset/limit.

    Subclasses provide ``parse_page`` and ``map_record``.
    """

    kind: ClassVar[SourceKind] = SourceKind.API

    def __init__(
        self,
        config: ApiSourceConfig,
        *,
        client: HttpClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._sleep = sleep
        self._clock = clock
        self.client = client or HttpClient(
            timeout=config.timeout_seconds,
            requests_per_minute=config.rate_limit_per_minute,
            retry_policy=config.retry,
            user_agent=user_agent,
            headers=config.api.headers,
            transport=transport,
            sleep=sleep,
        )

        self._token: str | None = None
        self._token_expires_at = 0.0
        self._initialized = False

    @property
    def search_url(self) -> str:
        api = self.config.api
        return api.base_url.rstrip("/") + "/" + api.search_path.lstrip("/")

    def apply_config(self, config: ApiSourceConfig) -> None:
        super().apply_config(config)
        self.client.configure(
            timeout=config.timeout_seconds,
            requests_per_minute=config.rate_limit_per_minute,
            retry_policy=config.retry,
        )

    async def initialize(self) -> None:
        oauth = self.config.api.oauth
        if oauth is not None and not oauth.has_credentials:
            raise ConfigurationError(
                f"Source '{self.source_id}' requires OAuth client_id and client_secret"
            )
        await self.client.open()
        self._initialized = True
        logger.info(
            "Adapter initialized",
            source_id=self.source_id,
            oauth=oauth is not None,
        )

    async def close(self) -> None:
        await self.client.close()
        self._initialized = False

    # --- Auth ---

    def token_valid(self) -> bool:
        return bool(self._token) and (
            self._token_expires_at - self._clock() > TOKEN_REFRESH_MARGIN_SECONDS
        )

    async def auth_headers(self) -> dict[str, str]:
        """Bearer header for the current token, refreshing it near expiry.

        Raises:
            AuthenticationError: If the token endpoint rejects the request.
        """
        oauth = self.config.api.oauth
        if oauth is None:
            return {}

        if not self.token_valid():
            form = {
                "grant_type": "client_credentials",
                "client_id": oauth.client_id,
                "client_secret": oauth.client_secret,
            }
            if oauth.scope:
                form["scope"] = oauth.scope

            try:
                response = await self.client.post(oauth.token_url, data=form)
            except (httpx.HTTPError, TransientHTTPError) as e:
                raise AuthenticationError(f"Token request failed: {e}") from e

            if response.status_code != 200:
                raise AuthenticationError(
                    f"Token endpoint returned HTTP {response.status_code}"
                )

            payload = response.json()
            token = payload.get("access_token")
            if not token:
                raise AuthenticationError("Token endpoint returned no access_token")

            self._token = token
            self._token_expires_at = self._clock() + float(payload.get("expires_in", 300))
            logger.debug("Access token refreshed", source_id=self.source_id)

        return {"Authorization": f"Bearer {self._token}"}

    # --- Paging ---

    def page_params(self, offset: int, limit: int) -> dict[str, Any]:
        """Query parameters for one page."""
        return {**self.config.api.params, "offset": offset, "limit": limit}

    async def fetch_page(self, offset: int, limit: int) -> ApiPage:
        """Fetch and parse one page.

        Raises:
            AuthenticationError: On 401/403.
            httpx.HTTPStatusError: On other non-2xx statuses.
        """
        headers = await self.auth_headers()
        response = await self.client.get(
            self.search_url,
            params=self.page_params(offset, limit),
            headers=headers,
        )
        if response.status_code in (401, 403):
            self._token = None
            raise AuthenticationError(
                f"Source '{self.source_id}' rejected credentials "
                f"(HTTP {response.status_code})"
            )
        response.raise_for_status()
        return self.parse_page(response.json())

    @abstractmethod
    def parse_page(self, payload: dict[str, Any]) -> ApiPage:
        """Extract total and hits from a response body."""

    @abstractmethod
    def map_record(self, raw: dict[str, Any]) -> CanonicalJob:
        """Map one raw hit to a CanonicalJob."""

    def record_id(self, raw: dict[str, Any]) -> str | None:
        value = raw.get("id")
        return str(value) if value is not None else None

    # --- Adapter contract ---

    async def test_connection(self) -> bool:
        try:
            await self.client.open()
            await self.fetch_page(0, 1)
            return True
        except Exception as e:
            logger.warning(
                "Connection test failed", source_id=self.source_id, error=str(e)
            )
            return False

    async def detect_structural_changes(self) -> ChangeDetectionResult:
        """JSON APIs are versioned contracts; there is no page shape to track."""
        return ChangeDetectionResult(
            source_id=self.source_id, status=ChangeStatus.UNCHANGED
        )

    async def collect(self) -> CollectionResult:
        if not self._initialized:
            await self.initialize()

        started = time.monotonic()
        result = CollectionResult(source_id=self.source_id)
        api = self.config.api
        offset = 0
        total: int | None = None

        try:
            for page_number in range(api.max_pages):
                if page_number and api.request_delay_ms:
                    await self._sleep(api.request_delay_ms / 1000)

                try:
                    page = await self.fetch_page(offset, api.page_size)
                except AuthenticationError:
                    raise
                except (httpx.HTTPError, TransientHTTPError, ValueError) as e:
                    result.add_error(
                        "page_fetch_error",
                        f"Failed to fetch page at offset {offset}: {e}",
                        offset=offset,
                    )
                    logger.warning(
                        "Page fetch failed",
                        source_id=self.source_id,
                        offset=offset,
                        error=str(e),
                    )
                    # Without a first page the total is unknown
                    if total is None:
                        break
                    offset += api.page_size
                    if offset >= total:
                        break
                    continue

                if page.total is not None:
                    total = page.total
                result.jobs_collected += len(page.hits)
                for raw in page.hits:
                    self._map_into(raw, result)

                offset += api.page_size
                if not page.hits or (total is not None and offset >= total):
                    break
            else:
                logger.warning(
                    "Page cap reached",
                    source_id=self.source_id,
                    max_pages=api.max_pages,
                    total=total,
                )

        except AuthenticationError as e:
            result.add_error("authentication_error", str(e), Severity.CRITICAL)
            result.status = CollectionStatus.FAILURE
            result.duration_ms = (time.monotonic() - started) * 1000
            logger.error("Authentication failed", source_id=self.source_id, error=str(e))
            return result

        result.settle_status()
        result.duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "Collection finished",
            source_id=self.source_id,
            status=result.status.value,
            jobs=len(result.jobs),
            total=total,
            errors=len(result.errors),
        )
        return result

    def _map_into(self, raw: dict[str, Any], result: CollectionResult) -> None:
        started = time.monotonic()
        try:
            job = self.map_record(raw)
        except Exception as e:
            result.add_error(
                "job_mapping_error",
                f"Failed to map record: {e}",
                external_id=self.record_id(raw),
            )
            return
        job.collecting_metadata.processing_time_ms = (time.monotonic() - started) * 1000
        job.collecting_metadata.source_version = self.version
        result.jobs.append(job)
