"""
Shared HTTP helper for provider implementations.

Every provider call goes through `ProviderHttpClient.request`, which logs
the request, maps transport failures to `RequestTimeoutError` /
`NetworkError`, maps HTTP 429 and 502-504 to `RateLimitedError` /
`NetworkError`, and retries those transient failures with exponential
backoff. Any other status is returned to the provider as ``(status, body)``
for provider-specific error parsing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, model_validator
from pydantic_core import PydanticCustomError
from starlette import status as st_status

from dns_orchestrator.errors import (
    NetworkError,
    ProviderError,
    RateLimitedError,
    RequestTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from typing import Any, Final, Self


LOG_TRUNCATE_LIMIT: Final[int] = 256

# Upper bound honoured for a provider-supplied Retry-After
MAX_RETRY_AFTER: Final[float] = 30.0

GATEWAY_ERROR_STATUSES: Final[frozenset[int]] = frozenset(
    {
        st_status.HTTP_502_BAD_GATEWAY,
        st_status.HTTP_503_SERVICE_UNAVAILABLE,
        st_status.HTTP_504_GATEWAY_TIMEOUT,
    },
)


logger = logging.getLogger(__name__)


class HttpSettings(BaseModel):
    """
    HTTP client settings shared by all providers.

    Attributes
    ----------
    connect_timeout : float
        Connect timeout in seconds.
    timeout : float
        Total per-request timeout in seconds.
    max_retries : int
        Retries after the first attempt for transient failures.
    retry_base_delay : float
        First backoff delay in seconds; doubles on every retry.
    retry_max_delay : float
        Backoff cap in seconds.
    """

    connect_timeout: float = 10.0
    timeout: float = 30.0
    max_retries: int = 2
    retry_base_delay: float = 0.1
    retry_max_delay: float = 10.0

    @model_validator(mode="after")
    def check_ranges(self) -> Self:
        """
        Validate timeouts and retry settings.

        Raises
        ------
        PydanticCustomError
            If a timeout is not positive or a retry setting is negative.
        """
        if self.connect_timeout <= 0 or self.timeout <= 0:
            err_type = "http_config_error"
            raise PydanticCustomError(err_type, "Timeouts must be greater than 0")
        if self.max_retries < 0 or self.retry_base_delay < 0 or self.retry_max_delay < 0:
            err_type = "http_config_error"
            raise PydanticCustomError(
                err_type,
                "Retry settings must not be negative",
            )
        return self


def truncate_for_log(text: str, limit: int = LOG_TRUNCATE_LIMIT) -> str:
    """
    Truncate a response body for logging.

    Parameters
    ----------
    text : str
        The text to truncate.
    limit : int, optional
        Maximum number of characters kept.

    Returns
    -------
    str
        `text` unchanged, or its first `limit` characters followed by
        ``... [truncated, total N chars]``.
    """
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... [truncated, total {len(text)} chars]"


def backoff_delay(attempt: int, base_delay: float = 0.1, max_delay: float = 10.0) -> float:
    """Exponential backoff without jitter: ``min(max_delay, base * 2^attempt)``."""
    return min(max_delay, base_delay * (2**attempt))


def retry_delay(error: ProviderError, attempt: int, settings: HttpSettings) -> float:
    """
    Compute the wait before retrying after `error`.

    A `RateLimitedError` carrying `retry_after` waits that long (capped at
    30 s); everything else uses `backoff_delay`.
    """
    if isinstance(error, RateLimitedError) and error.retry_after is not None:
        return min(float(error.retry_after), MAX_RETRY_AFTER)
    return backoff_delay(attempt, settings.retry_base_delay, settings.retry_max_delay)


def _parse_retry_after(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return max(int(value.strip()), 0)
    except ValueError:
        return None


class ProviderHttpClient:
    """
    Async HTTP client bound to one provider instance.

    The underlying `httpx.AsyncClient` is created lazily and released by
    `aclose`, which waits for requests already on the wire.
    """

    def __init__(
        self,
        provider: str,
        settings: HttpSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Parameters
        ----------
        provider : str
            Provider tag, used as the log prefix and in raised errors.
        settings : HttpSettings | None, optional
            Timeouts and retry settings; defaults when omitted.
        transport : httpx.AsyncBaseTransport | None, optional
            Custom transport (tests use `httpx.MockTransport`).
        """
        self.provider = provider
        self.settings = settings or HttpSettings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self.settings.timeout,
                    connect=self.settings.connect_timeout,
                ),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client once no request is in flight."""
        await self._idle.wait()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | Callable[[], Mapping[str, str]] | None = None,
        params: Mapping[str, Any] | None = None,
        content: bytes | None = None,
        max_retries: int | None = None,
    ) -> tuple[int, str]:
        """
        Send a request, retrying transient failures.

        Parameters
        ----------
        method : str
            HTTP method.
        url : str
            Absolute URL (query string may already be included).
        headers : Mapping[str, str] | Callable[[], Mapping[str, str]] | None, optional
            Request headers, or a callable producing them. A callable is
            invoked once per attempt so signed requests get a fresh
            timestamp and nonce on retry.
        params : Mapping[str, Any] | None, optional
            Query parameters appended by httpx.
        content : bytes | None, optional
            Raw request body.
        max_retries : int | None, optional
            Override of `HttpSettings.max_retries`.

        Returns
        -------
        tuple[int, str]
            HTTP status and response text.

        Raises
        ------
        RequestTimeoutError
            If the request timed out on every attempt.
        NetworkError
            On transport failures or HTTP 502/503/504 on every attempt.
        RateLimitedError
            On HTTP 429 on every attempt.
        """
        retries = self.settings.max_retries if max_retries is None else max_retries

        attempt = 0
        while True:
            request_headers = headers() if callable(headers) else headers
            try:
                return await self._send_once(method, url, request_headers, params, content)
            except ProviderError as e:
                if not e.retryable or attempt >= retries:
                    raise
                delay = retry_delay(e, attempt, self.settings)
                logger.warning(
                    "[%s] Retry %d/%d for %s %s (%s) - waiting %.2fs",
                    self.provider,
                    attempt + 1,
                    retries,
                    method,
                    url,
                    e.code,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _send_once(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None,
        params: Mapping[str, Any] | None,
        content: bytes | None,
    ) -> tuple[int, str]:
        client = self._get_client()
        logger.debug("[%s] %s %s", self.provider, method, url)

        self._in_flight += 1
        self._idle.clear()
        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params,
                content=content,
            )
        except httpx.TimeoutException as e:
            logger.warning("[%s] Request timed out: '%s'", self.provider, e)
            raise RequestTimeoutError(self.provider, str(e) or type(e).__name__) from e
        except httpx.RequestError as e:
            logger.error("[%s] Network request failed: '%s'", self.provider, e)  # noqa: TRY400
            raise NetworkError(self.provider, str(e) or type(e).__name__) from e
        finally:
            self._in_flight -= 1
            if not self._in_flight:
                self._idle.set()

        status = response.status_code
        text = response.text
        logger.debug("[%s] %s %s -> %d", self.provider, method, url, status)
        logger.debug("[%s] Response: %s", self.provider, truncate_for_log(text))

        if status == st_status.HTTP_429_TOO_MANY_REQUESTS:
            raise RateLimitedError(
                self.provider,
                _parse_retry_after(response.headers.get("retry-after")),
                truncate_for_log(text) or None,
            )
        if status in GATEWAY_ERROR_STATUSES:
            raise NetworkError(self.provider, f"HTTP {status}: {truncate_for_log(text)}")

        return status, text
