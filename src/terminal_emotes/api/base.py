"""Shared HTTP plumbing for the API clients."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiohttp

logger = logging.getLogger(__name__)

# Retry configuration
DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 0.5  # seconds
DEFAULT_MAX_DELAY = 5.0  # seconds

T = TypeVar("T")


async def safe_json(resp: aiohttp.ClientResponse) -> dict | list | None:
    """Decode a JSON body whatever its content type.

    Returns None for HTML error pages and malformed bodies.
    """
    try:
        return await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Bad JSON from {resp.url}: {e}")
        return None


class BaseApiClient:
    """Owns one lazily created ``ClientSession``; usable as ``async with``."""

    name = "api"

    def __init__(self, timeout: float = 15) -> None:
        self._session: aiohttp.ClientSession | None = None
        self._timeout = timeout

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                connector=aiohttp.TCPConnector(limit=50),
            )
        return self._session

    async def close(self) -> None:
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ) -> T:
        """Run ``operation``, retrying transport errors with exponential backoff.

        The last error is re-raised once ``max_retries`` retries have failed.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt >= max_retries:
                    logger.error(f"{self.name}: giving up after {attempt + 1} attempts: {e}")
                    raise
                delay = min(base_delay * (2**attempt), max_delay)
                attempt += 1
                logger.warning(
                    f"{self.name}: attempt {attempt}/{max_retries + 1} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
