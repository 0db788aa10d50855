"""
HTTP utilities for digestbot.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
import async_timeout
import backoff

# Configure logging
logger = logging.getLogger(__name__)

MAX_CONCURRENT_REQUESTS = 5
REQUEST_TIMEOUT = 30  # seconds

DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36',
    'Accept': 'application/json, application/rss+xml, application/xml, text/html, */*',
    'Accept-Language': 'ru-RU,ru;q=0.9,en-US;q=0.5',
}


class HttpClient:
    """
    Shared asynchronous HTTP client used by source adapters and notification channels.

    Requests are bounded by a semaphore, carry a timeout and are retried
    with exponential backoff on connection errors and timeouts.
    """
    def __init__(self, timeout: float = REQUEST_TIMEOUT, max_concurrent: int = MAX_CONCURRENT_REQUESTS,
                 headers: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self.headers = dict(DEFAULT_HEADERS)
        if headers:
            self.headers.update(headers)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """
        Lazy initialization of aiohttp session.

        Returns:
            aiohttp.ClientSession: The HTTP session
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def close(self):
        """Close aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientError, asyncio.TimeoutError),
        max_tries=3
    )
    async def get_text(self, url: str, params: Optional[Any] = None,
                       headers: Optional[Dict[str, str]] = None) -> str:
        """
        Fetch a URL and return the body as text.

        Args:
            url: The URL to fetch
            params: Optional query parameters
            headers: Optional extra headers

        Returns:
            The response body

        Raises:
            aiohttp.ClientError: On HTTP errors after retries are exhausted
            asyncio.TimeoutError: If every attempt timed out
        """
        async with self._semaphore:
            async with async_timeout.timeout(self.timeout):
                async with self.session.get(url, params=params, headers=headers) as response:
                    response.raise_for_status()
                    logger.debug(f"GET {response.url} -> {response.status}")
                    return await response.text()

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientError, asyncio.TimeoutError),
        max_tries=3
    )
    async def get_json(self, url: str, params: Optional[Any] = None,
                       headers: Optional[Dict[str, str]] = None) -> Any:
        """
        Fetch a URL and decode the JSON body.

        Args:
            url: The URL to fetch
            params: Optional query parameters
            headers: Optional extra headers

        Returns:
            The decoded JSON document
        """
        async with self._semaphore:
            async with async_timeout.timeout(self.timeout):
                async with self.session.get(url, params=params, headers=headers) as response:
                    response.raise_for_status()
                    logger.debug(f"GET {response.url} -> {response.status}")
                    return await response.json(content_type=None)

    async def post_json(self, url: str, payload: Dict[str, Any]) -> Any:
        """
        POST a JSON payload and decode the JSON answer.

        Not retried.

        Args:
            url: Target URL
            payload: JSON-serializable body

        Returns:
            The decoded JSON response
        """
        async with self._semaphore:
            async with async_timeout.timeout(self.timeout):
                async with self.session.post(url, json=payload) as response:
                    response.raise_for_status()
                    return await response.json(content_type=None)
