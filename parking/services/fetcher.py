"""
RetryingFetcher - async JSON GET with per-attempt timeout, retry and backoff.

- Each attempt is bounded by its own timeout; a caller-supplied
  CancelSignal is honoured on top of it (whichever fires first).
- 429/500/502/503/504 and transport errors are retried with exponential
  backoff (200ms, 400ms, 800ms, ...).
- Any other non-2xx status fails immediately.
- If the caller's signal fires, the call fails at once with its reason.
"""

import asyncio
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from parking.services.cancellation import CancelSignal
from parking.services.errors import (
    RequestCancelledError,
    RequestTimeoutError,
    UpstreamHardError,
    UpstreamTransientError,
)

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
MAX_ATTEMPTS = 3
BASE_RETRY_DELAY = 0.2  # seconds


class RetryingFetcher:
    """
    Fetches JSON documents from an unreliable upstream.

    Usage:
        async with RetryingFetcher(timeout=3.0) as fetcher:
            payload = await fetcher.fetch(url, signal=deadline)
    """

    def __init__(
        self,
        timeout: float = 3.0,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_RETRY_DELAY,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log=logger,
    ):
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep
        self._log = log

        # HTTP client (lazy initialization unless one is injected)
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._http_client

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before the attempt following ``attempt`` (1-indexed)."""
        return self._base_delay * 2 ** (attempt - 1)

    async def fetch(
        self,
        url: str,
        signal: CancelSignal | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
    ) -> Any:
        """
        GET ``url`` and return the decoded JSON body.

        Args:
            url: Absolute URL to request
            signal: Optional caller cancellation (e.g. an overall deadline)
            timeout: Override the per-attempt timeout in seconds
            max_attempts: Override the attempt cap

        Returns:
            The parsed JSON document

        Raises:
            RequestCancelledError: If ``signal`` fires before completion
            UpstreamHardError: For a non-retryable non-2xx response
            UpstreamTransientError: When every attempt failed transiently
            ValueError: If ``max_attempts`` is below 1
        """
        attempts = self._max_attempts if max_attempts is None else max_attempts
        req_timeout = self._timeout if timeout is None else timeout
        if attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {attempts}")
        last_error: UpstreamTransientError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await self._attempt(url, req_timeout, signal)
            except UpstreamTransientError as e:
                last_error = e

            if attempt >= attempts:
                break

            delay = self.backoff_delay(attempt)
            delay_ms = round(delay * 1000)
            self._log.bind(
                attempt=attempt,
                url=url,
                delay=delay_ms,
                status=last_error.status,
                error=str(last_error),
            ).info(f"Retrying upstream request to {url} in {delay_ms}ms")

            if signal is None:
                await self._sleep(delay)
            else:
                await signal.guard(self._sleep(delay))

        assert last_error is not None
        raise last_error

    async def _attempt(
        self, url: str, timeout: float, signal: CancelSignal | None
    ) -> Any:
        """Run one bounded attempt and classify its outcome."""
        client = await self._get_http_client()
        timer = CancelSignal.after(timeout, "Request timed out")
        attempt_signal = CancelSignal.any(signal, timer)

        try:
            response = await attempt_signal.guard(
                client.get(url, headers={"Accept": "application/json"})
            )
        except RequestCancelledError:
            if signal is not None and signal.cancelled:
                raise RequestCancelledError(signal.reason or "Aborted") from None
            raise RequestTimeoutError(url, timeout) from None
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(url, timeout) from e
        except httpx.HTTPError as e:
            raise UpstreamTransientError(
                url, message=f"Request to {url} failed: {e}"
            ) from e
        finally:
            attempt_signal.dispose()
            timer.dispose()

        if response.status_code in RETRY_STATUS_CODES:
            raise UpstreamTransientError(url, response.status_code, response.text)

        if not response.is_success:
            raise UpstreamHardError(url, response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamTransientError(
                url,
                response.status_code,
                message=f"Invalid JSON from {url}: {e}",
            ) from e

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("RetryingFetcher closed")

    async def __aenter__(self) -> "RetryingFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
