"""
StorageClient - JSON API client for cloudstore
"""

import json
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote

import httpx

from ._http import HttpClient
from .context import Context
from .convert import query_params, to_domain_bucket, to_domain_object, to_object_list
from .error import (
    AccessDeniedException,
    AuthenticationException,
    BucketNotFoundException,
    ObjectNotFoundException,
    ServerException,
)
from .models import Bucket, ObjectList, Query, StoredObject
from .writer import ObjectWriter


class StorageClient:
    """
    Client for an object storage service speaking the JSON resource API.

    Example:
        async with StorageClient(access_token=token) as client:
            writer = client.new_writer(
                StoredObject(bucket="photos", name="a.jpg", content_type="image/jpeg")
            )
            async for chunk in source:
                await writer.write(chunk)
            await writer.close()
            obj = await writer.result()
    """

    def __init__(
        self,
        endpoint: str = "storage.googleapis.com",
        access_token: Optional[str] = None,
        use_ssl: bool = True,
        request_timeout: int = 30,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize StorageClient.

        Args:
            endpoint: Server address and optional port (e.g., "storage.local:4443")
            access_token: OAuth2 bearer token sent with every request
            use_ssl: Use HTTPS instead of HTTP
            request_timeout: Request timeout in seconds
            max_retries: Maximum attempts for requests that can be replayed
            transport: Optional httpx transport, mainly for tests
        """
        self.endpoint = endpoint
        self.access_token = access_token
        self.use_ssl = use_ssl
        self.base_url = f"{'https' if use_ssl else 'http'}://{endpoint}"

        self._http = HttpClient(timeout=request_timeout, max_retries=max_retries, transport=transport)
        self._logger = logging.getLogger(__name__)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = dict(extra or {})
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _check_response(self, response: httpx.Response) -> httpx.Response:
        """Raise the matching exception for an error response."""
        self._logger.debug(
            "[cloudstore][Request] method=%s url=%s status=%s",
            response.request.method,
            response.request.url,
            response.status_code,
        )
        if response.status_code < 400:
            return response

        message = f"Request failed with status {response.status_code}"
        reason = None
        try:
            error = response.json().get("error") or {}
            message = error.get("message") or message
            errors = error.get("errors") or []
            if errors:
                reason = errors[0].get("reason")
        except (ValueError, AttributeError):
            pass

        if response.status_code == 401:
            raise AuthenticationException(message)
        if response.status_code == 403:
            raise AccessDeniedException(message)
        raise ServerException(message, response.status_code, reason)

    # Object operations

    async def insert_object(
        self,
        bucket_name: str,
        wire_object: Dict[str, Any],
        media: Any,
    ) -> Dict[str, Any]:
        """
        Upload an object in a single multipart request.

        media is an async iterable of byte chunks, optionally carrying a
        content_type attribute. It is consumed while the request is sent,
        so the request is never retried.
        """
        boundary = uuid.uuid4().hex
        content_type = getattr(media, "content_type", "") or "application/octet-stream"
        url = f"{self.base_url}/upload/storage/v1/b/{quote(bucket_name, safe='')}/o"
        headers = self._headers({"Content-Type": f"multipart/related; boundary={boundary}"})

        response = await self._http.post_stream(
            url,
            content=_multipart_body(boundary, wire_object, media, content_type),
            headers=headers,
            params={"uploadType": "multipart"},
        )
        self._check_response(response)
        return response.json()

    async def get_object(self, bucket_name: str, object_name: str) -> StoredObject:
        """Fetch an object's metadata."""
        url = (
            f"{self.base_url}/storage/v1/b/{quote(bucket_name, safe='')}"
            f"/o/{quote(object_name, safe='')}"
        )
        response = await self._http.get(url, headers=self._headers())
        try:
            self._check_response(response)
        except ServerException as e:
            if e.status_code == 404:
                raise ObjectNotFoundException(bucket_name, object_name)
            raise
        return to_domain_object(response.json())

    async def list_objects(self, bucket_name: str, query: Optional[Query] = None) -> ObjectList:
        """
        List one page of objects in a bucket.

        Pass the returned ObjectList.next back in to fetch the following page.
        """
        url = f"{self.base_url}/storage/v1/b/{quote(bucket_name, safe='')}/o"
        response = await self._http.get(url, headers=self._headers(), params=query_params(query))
        try:
            self._check_response(response)
        except ServerException as e:
            if e.status_code == 404:
                raise BucketNotFoundException(bucket_name)
            raise
        return to_object_list(response.json(), query)

    # Bucket operations

    async def get_bucket(self, bucket_name: str) -> Bucket:
        """Fetch a bucket's metadata."""
        url = f"{self.base_url}/storage/v1/b/{quote(bucket_name, safe='')}"
        response = await self._http.get(url, headers=self._headers())
        try:
            self._check_response(response)
        except ServerException as e:
            if e.status_code == 404:
                raise BucketNotFoundException(bucket_name)
            raise
        return to_domain_bucket(response.json())

    # Streaming upload

    def new_writer(self, info: StoredObject, timeout: Optional[float] = None) -> ObjectWriter:
        """
        Start a streaming upload of info.bucket/info.name.

        Must be called from a running event loop. Read-only fields of info
        are ignored.
        """
        return ObjectWriter(Context(self, timeout=timeout), info)

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        await self._http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


async def _multipart_body(
    boundary: str,
    wire_object: Dict[str, Any],
    media: Any,
    content_type: str,
) -> AsyncIterator[bytes]:
    yield (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
    ).encode()
    yield json.dumps(wire_object).encode()
    yield f"\r\n--{boundary}\r\nContent-Type: {content_type}\r\n\r\n".encode()
    async for chunk in media:
        yield chunk
    yield f"\r\n--{boundary}--\r\n".encode()
