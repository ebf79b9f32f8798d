"""
Default request capability: an aiohttp client with retries and backoff.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Dict, Mapping, Optional

import aiohttp
import structlog

from embedcore.config.config import RequestConfig
from embedcore.errors import TransportError
from embedcore.models import Response

logger = structlog.get_logger(__name__)

RETRY_STATUSES = frozenset({429, 502, 503, 504})


class HttpClient:
    """Async HTTP client implementing ``request(url, options) -> Response``.

    The aiohttp session is created lazily on the first request, so building
    an engine never needs a running event loop. Non-2xx responses and
    connection failures raise :class:`TransportError`; the former carry the
    status code.
    """

    def __init__(self, config: Optional[RequestConfig] = None) -> None:
        self.config = config or RequestConfig()
        self.session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Initialize the HTTP client session."""
        if self.session is None or self.session.closed:
            headers = {"User-Agent": self.config.user_agent}
            headers.update(self.config.headers)
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                headers=headers,
            )
            logger.debug("HTTP client session initialized", timeout=self.config.timeout)

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
            logger.debug("HTTP client closed")

    async def __aenter__(self) -> "HttpClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter: roughly 1s, 2s, 4s."""
        return 2 ** (attempt - 1) * random.uniform(0.8, 1.2)

    async def request(self, url: str, options: Optional[Mapping[str, Any]] = None) -> Response:
        """Perform one logical request, retrying connection errors and 429/5xx.

        Recognised options: ``method``, ``headers``, ``timeout``, ``retries``;
        anything else is passed to :meth:`aiohttp.ClientSession.request`.
        """
        options = dict(options or {})
        method = str(options.pop("method", "GET")).upper()
        headers: Dict[str, str] = dict(options.pop("headers", None) or {})
        timeout = float(options.pop("timeout", self.config.timeout))
        retries = int(options.pop("retries", self.config.retries))

        await self.initialize()
        assert self.session is not None

        start_time = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=timeout),
                    **options,
                ) as response:
                    if response.status in RETRY_STATUSES and attempt <= retries:
                        logger.info("Retrying request", url=url, status=response.status, attempt=attempt)
                        await asyncio.sleep(self._calculate_backoff_delay(attempt))
                        continue

                    content = await response.read()
                    result = Response(
                        status_code=response.status,
                        headers={key: value for key, value in response.headers.items()},
                        body=content.decode(response.charset or "utf-8", errors="replace"),
                        content=content,
                        url=str(response.url),
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt <= retries:
                    logger.warning("Request failed, retrying", url=url, attempt=attempt, error=str(e))
                    await asyncio.sleep(self._calculate_backoff_delay(attempt))
                    continue
                logger.warning("Request failed", url=url, attempts=attempt, error=str(e))
                raise TransportError(f"Request to {url} failed: {e}", url=url) from e

            logger.debug(
                "Request finished",
                url=url,
                method=method,
                status=result.status_code,
                attempts=attempt,
                duration=round(time.monotonic() - start_time, 3),
            )
            if not 200 <= result.status_code < 300:
                raise TransportError(
                    f"Bad response code: {result.status_code}",
                    status_code=result.status_code,
                    url=url,
                )
            return result
