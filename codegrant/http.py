from __future__ import annotations

import asyncio
import logging

import httpx

from .constants import DEFAULT_RATE_LIMIT_RETRIES, LOGGER


def _retry_after_seconds(header: str | None) -> int | None:
    if header is None:
        return None
    try:
        return max(0, int(header))
    except ValueError:
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Re-sends requests answered with 429 or 5xx.

    A 429 is retried at most ``rate_limit_retries`` times, waiting for
    ``Retry-After`` (one second when absent). A 5xx backs off 1, 2, 4, ...
    seconds. Both count towards ``max_retries``.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._max_retries = max(0, max_retries)
        self._rate_limit_retries = max(0, min(rate_limit_retries, self._max_retries))
        self._sleep = sleep
        self._logger = logger or LOGGER

    def _retry_delay(self, response: httpx.Response, attempt: int, rate_limited: int) -> int | None:
        if attempt >= self._max_retries:
            return None
        if response.status_code == 429:
            if rate_limited >= self._rate_limit_retries:
                return None
            delay = _retry_after_seconds(response.headers.get("retry-after"))
            return 1 if delay is None else delay
        if response.is_server_error:
            return 2**attempt
        return None

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = request.content
        attempt = 0
        rate_limited = 0

        while True:
            response = await self._transport.handle_async_request(
                httpx.Request(
                    method=request.method,
                    url=request.url,
                    headers=request.headers,
                    content=body,
                    extensions=request.extensions,
                )
            )

            delay = self._retry_delay(response, attempt, rate_limited)
            if delay is None:
                return response

            self._logger.warning(
                "Directory answered %s; retrying in %ss (%s %s)",
                response.status_code,
                delay,
                request.method,
                request.url,
            )
            await response.aclose()
            await self._sleep(delay)
            attempt += 1
            if response.status_code == 429:
                rate_limited += 1

    async def aclose(self) -> None:
        await self._transport.aclose()


def build_client(
    base_url: str,
    *,
    timeout: float = 10.0,
    max_retries: int = 2,
    rate_limit_retries: int = DEFAULT_RATE_LIMIT_RETRIES,
) -> httpx.AsyncClient:
    transport = RetryTransport(
        httpx.AsyncHTTPTransport(),
        max_retries=max_retries,
        rate_limit_retries=rate_limit_retries,
        logger=LOGGER,
    )
    return httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
