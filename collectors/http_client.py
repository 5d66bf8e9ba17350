"""HTTP client wrapper with rate limiting and retries."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.errors import TransientHTTPError
from schemas.config import RetryPolicy

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]

RETRYABLE_STATUS = {429, 502, 503, 504}
RETRYABLE_EXCEPTIONS = (TransientHTTPError, httpx.TimeoutException, httpx.NetworkError)

DEFAULT_USER_AGENT = "JobCollector/1.0 (+https://arbetsformedlingen.se)"


@dataclass
class FetchResult:
    """Result of an HTTP fetch."""

    url: str
    status_code: int
    content: bytes
    headers: dict[str, str]
    content_type: str | None
    duration_ms: float
    success: bool
    error: str | None = None

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


@dataclass
class RateLimiter:
    """Spaces requests so a requests-per-minute ceiling holds.

    Concurrent callers are serialized so each one gets its own slot.
    """

    requests_per_minute: float
    sleep: Sleep = asyncio.sleep
    _last_request: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def min_interval(self) -> float:
        if self.requests_per_minute <= 0:
            return 0.0
        return 60.0 / self.requests_per_minute

    async def acquire(self) -> None:
        """Wait if needed to respect rate limit."""
        if self.min_interval <= 0:
            return

        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request

            if elapsed < self.min_interval:
                await self.sleep(self.min_interval - elapsed)

            self._last_request = time.monotonic()


class HttpClient:
    """HTTP client with rate limiting and retry support.

    Retries HTTP 429, gateway errors, timeouts and network errors with
    exponential backoff from the RetryPolicy. Any other status is returned
    to the caller untouched so it can decide what is fatal.
    """

    def __init__(
        self,
        timeout: float = 30,
        requests_per_minute: float = 60,
        retry_policy: RetryPolicy | None = None,
        user_agent: str | None = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = RateLimiter(requests_per_minute, sleep=sleep)
        self.headers = dict(headers or {})
        if user_agent:
            self.headers.setdefault("User-Agent", user_agent)

        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    def configure(
        self,
        *,
        timeout: float,
        requests_per_minute: float,
        retry_policy: RetryPolicy,
    ) -> None:
        """Apply new limits to this client, open or not.

        Takes effect from the next request.
        """
        self.timeout = timeout
        self.retry_policy = retry_policy
        self.rate_limiter.requests_per_minute = requests_per_minute
        if self._client is not None:
            self._client.timeout = httpx.Timeout(timeout)

    async def __aenter__(self) -> HttpClient:
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self.headers,
                follow_redirects=True,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request with rate limiting and retries.

        Raises:
            TransientHTTPError: Retryable status persisted past max_retries.
            httpx.TimeoutException, httpx.NetworkError: Same, for I/O failures.
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Call open() or use 'async with'.")

        client = self._client
        policy = self.retry_policy

        @retry(
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=wait_exponential(
                multiplier=policy.initial_delay_ms / 1000,
                exp_base=policy.backoff_factor,
            ),
            retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        async def _send() -> httpx.Response:
            await self.rate_limiter.acquire()
            response = await client.request(
                method, url, params=params, data=data, headers=headers
            )
            if response.status_code in RETRYABLE_STATUS:
                raise TransientHTTPError(response.status_code, url)
            return response

        return await _send()

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get_text(self, url: str, **kwargs: Any) -> str:
        """GET a page and return its body, raising on non-2xx status."""
        response = await self.get(url, **kwargs)
        response.raise_for_status()
        return response.text

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a URL without raising; failures are reported on the result."""
        start_time = time.monotonic()

        try:
            result = await self.get(url)
            duration_ms = (time.monotonic() - start_time) * 1000

            return FetchResult(
                url=url,
                status_code=result.status_code,
                content=result.content,
                headers=dict(result.headers),
                content_type=result.headers.get("content-type"),
                duration_ms=duration_ms,
                success=result.is_success,
            )

        except Exception as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            return FetchResult(
                url=url,
                status_code=getattr(e, "status_code", 0),
                content=b"",
                headers={},
                content_type=None,
                duration_ms=duration_ms,
                success=False,
                error=str(e),
            )


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "http_retry",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc),
    )
