import asyncio

import httpx
import pytest

from collectors.http_client import HttpClient, RateLimiter
from core.errors import TransientHTTPError
from schemas.config import RetryPolicy
from tests.fakes import RecordingSleep

URL = "https://api.example.com/search"


def make_client(handler, sleep, **policy) -> HttpClient:
    return HttpClient(
        requests_per_minute=0,
        retry_policy=RetryPolicy(**policy),
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )


def status_sequence(*statuses):
    calls = []
    remaining = iter(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(next(remaining), json={"ok": True})

    return handler, calls


def test_retries_429_with_exponential_backoff():
    handler, calls = status_sequence(429, 429, 429, 200)
    sleep = RecordingSleep()

    async def run():
        async with make_client(handler, sleep, max_retries=3, initial_delay_ms=1000, backoff_factor=2) as client:
            return await client.get(URL)

    response = asyncio.run(run())

    assert response.status_code == 200
    assert len(calls) == 4
    assert sleep.delays == [1, 2, 4]


def test_gives_up_after_max_retries():
    handler, calls = status_sequence(503, 503, 503)
    sleep = RecordingSleep()

    async def run():
        async with make_client(handler, sleep, max_retries=2, initial_delay_ms=500) as client:
            await client.get(URL)

    with pytest.raises(TransientHTTPError) as exc:
        asyncio.run(run())

    assert exc.value.status_code == 503
    assert len(calls) == 3
    assert sleep.delays == [0.5, 1.0]


def test_non_retryable_status_returned_untouched():
    handler, calls = status_sequence(404)
    sleep = RecordingSleep()

    async def run():
        async with make_client(handler, sleep) as client:
            return await client.get(URL)

    response = asyncio.run(run())

    assert response.status_code == 404
    assert len(calls) == 1
    assert sleep.delays == []


def test_network_errors_are_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text="ok")

    sleep = RecordingSleep()

    async def run():
        async with make_client(handler, sleep) as client:
            return await client.get_text(URL)

    assert asyncio.run(run()) == "ok"
    assert sleep.delays == [1]


def test_fetch_reports_failure_without_raising():
    handler, _ = status_sequence(500)

    async def run():
        async with make_client(handler, RecordingSleep()) as client:
            return await client.fetch(URL)

    result = asyncio.run(run())

    assert not result.success
    assert result.status_code == 500


def test_user_agent_header_sent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["ua"] = request.headers.get("user-agent")
        return httpx.Response(200)

    async def run():
        client = HttpClient(
            requests_per_minute=0,
            user_agent="TestAgent/1.0",
            transport=httpx.MockTransport(handler),
        )
        async with client:
            await client.get(URL)

    asyncio.run(run())

    assert seen["ua"] == "TestAgent/1.0"


def test_request_before_open_raises():
    client = HttpClient()

    with pytest.raises(RuntimeError):
        asyncio.run(client.get(URL))


def test_rate_limiter_spaces_requests():
    sleep = RecordingSleep()
    limiter = RateLimiter(requests_per_minute=60, sleep=sleep)

    async def run():
        await limiter.acquire()
        await limiter.acquire()

    asyncio.run(run())

    assert len(sleep.delays) == 1
    assert 0 < sleep.delays[0] <= 1.0


def test_rate_limiter_disabled_at_zero():
    sleep = RecordingSleep()
    limiter = RateLimiter(requests_per_minute=0, sleep=sleep)

    asyncio.run(limiter.acquire())

    assert sleep.delays == []
