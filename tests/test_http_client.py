"""Tests for the shared provider HTTP client."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from pydantic import ValidationError

from dns_orchestrator.errors import NetworkError, RateLimitedError, RequestTimeoutError
from dns_orchestrator.providers.http_client import (
    HttpSettings,
    ProviderHttpClient,
    backoff_delay,
    retry_delay,
    truncate_for_log,
)

NO_DELAY = HttpSettings(max_retries=2, retry_base_delay=0.0, retry_max_delay=0.0)


def _client(handler, settings: HttpSettings = NO_DELAY) -> ProviderHttpClient:
    return ProviderHttpClient("test", settings, httpx.MockTransport(handler))


class TestHttpSettings:
    """Tests for HttpSettings validation."""

    def test_defaults(self):
        settings = HttpSettings()
        assert settings.timeout == 30.0
        assert settings.max_retries == 2

    @pytest.mark.parametrize(
        "kwargs",
        [{"timeout": 0}, {"connect_timeout": -1}, {"max_retries": -1}],
    )
    def test_invalid(self, kwargs: dict[str, float]):
        with pytest.raises(ValidationError, match="http_config_error|must"):
            HttpSettings(**kwargs)


class TestHelpers:
    """Tests for logging and backoff helpers."""

    def test_truncate_short(self):
        assert truncate_for_log("short") == "short"

    def test_truncate_long(self):
        text = "x" * 300
        truncated = truncate_for_log(text)
        assert truncated.startswith("x" * 256)
        assert truncated.endswith("... [truncated, total 300 chars]")

    def test_backoff_doubles_and_caps(self):
        assert backoff_delay(0, 0.1, 10.0) == pytest.approx(0.1)
        assert backoff_delay(3, 0.1, 10.0) == pytest.approx(0.8)
        assert backoff_delay(20, 0.1, 10.0) == 10.0

    def test_retry_after_is_honoured_and_capped(self):
        settings = HttpSettings()
        assert retry_delay(RateLimitedError("test", 5), 0, settings) == 5.0
        assert retry_delay(RateLimitedError("test", 120), 0, settings) == 30.0
        assert retry_delay(NetworkError("test", "x"), 1, settings) == pytest.approx(0.2)


class TestProviderHttpClient:
    """Tests for ProviderHttpClient.request."""

    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["x-test"] == "1"
            assert request.url.params["page"] == "2"
            return httpx.Response(200, text="ok")

        client = _client(handler)
        status, text = await client.request(
            "GET", "https://api.test/items", headers={"X-Test": "1"}, params={"page": 2},
        )
        assert (status, text) == (200, "ok")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_client_errors_are_returned(self):
        client = _client(lambda request: httpx.Response(404, text="missing"))
        assert await client.request("GET", "https://api.test/") == (404, "missing")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_retries_gateway_errors(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, text="ok")

        client = _client(handler)
        assert await client.request("GET", "https://api.test/") == (200, "ok")
        assert len(calls) == 3
        await client.aclose()

    @pytest.mark.asyncio
    async def test_gateway_error_after_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502, text="bad gateway")

        client = _client(handler)
        with pytest.raises(NetworkError, match="HTTP 502"):
            await client.request("GET", "https://api.test/")
        assert len(calls) == 3
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "0"}, text="slow down")

        client = _client(handler)
        with pytest.raises(RateLimitedError) as exc_info:
            await client.request("GET", "https://api.test/")
        assert exc_info.value.retry_after == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)
        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.request("GET", "https://api.test/")
        assert exc_info.value.code == "Timeout"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(NetworkError, match="connection refused"):
            await client.request("GET", "https://api.test/", max_retries=0)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_headers_callable_called_per_attempt(self):
        seen: list[str] = []
        counter = iter(range(10))

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["x-nonce"])
            if len(seen) == 1:
                return httpx.Response(504)
            return httpx.Response(200, text="ok")

        client = _client(handler)
        await client.request(
            "POST", "https://api.test/", headers=lambda: {"X-Nonce": str(next(counter))},
        )
        assert seen == ["0", "1"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_waits_for_in_flight_request(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await release.wait()
            return httpx.Response(200, text="done")

        client = _client(handler)
        pending = asyncio.create_task(client.request("GET", "https://api.test/slow"))
        await started.wait()

        closing = asyncio.create_task(client.aclose())
        await asyncio.sleep(0)
        assert not closing.done()

        release.set()
        assert await pending == (200, "done")
        await closing
        assert client._client is None
