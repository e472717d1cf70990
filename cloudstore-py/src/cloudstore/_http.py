"""
HTTP client utilities for cloudstore
"""

import httpx
from typing import Optional, Dict, Any, AsyncIterable
import asyncio


class HttpClient:
    """
    HTTP client wrapper with connection pooling and retry logic.
    """

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=100),
            transport=transport,
        )

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> httpx.Response:
        """Make a GET request with retry logic."""
        return await self._request("GET", url, headers=headers, params=params, **kwargs)

    async def post_stream(
        self,
        url: str,
        content: AsyncIterable[bytes],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make a POST request whose body is produced while it is sent.

        The body can only be read once, so the request is never retried.
        """
        return await self._client.request(
            "POST",
            url,
            content=content,
            headers=headers,
            params=params,
        )

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any
    ) -> httpx.Response:
        """Make HTTP request with exponential backoff retry logic."""
        for attempt in range(max(1, self.max_retries)):
            try:
                response = await self._client.request(method, url, headers=headers, **kwargs)
                return response
            except httpx.RequestError:
                if attempt < self.max_retries - 1:
                    wait_time = min(1000 * (2 ** attempt), 10000) / 1000
                    await asyncio.sleep(wait_time)
                else:
                    raise

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
