"""HTTP client for the store proxy API."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from currents.remote.base import RemoteStore, RemoteWriteError, key_column, row_key

logger = logging.getLogger(__name__)


class RemoteStoreClient(RemoteStore):
    """Client for the store proxy row API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            base_url: Store proxy service URL
            token: Bearer token, if the proxy requires one
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            transport: Optional transport override (tests, ASGI apps)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            verify=verify_ssl,
            headers=headers,
            transport=transport,
        )

    @staticmethod
    def _row_path(collection: str, key: str) -> str:
        return f"/rows/{collection}/{quote(key, safe='')}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise RemoteWriteError(
                f"{method} {path} failed with {e.response.status_code}: "
                f"{e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteWriteError(f"{method} {path} failed: {e}") from e

    async def health_check(self) -> bool:
        """Check service health.

        Returns:
            True if the proxy and its storage respond as healthy
        """
        try:
            response = await self.client.get("/health")
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return response.status_code == 200

    async def upsert(self, collection: str, row: dict[str, Any]) -> None:
        key = row_key(collection, row)
        await self._request("PUT", self._row_path(collection, key), json=row)

    async def update(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        key_column(collection)
        await self._request("PATCH", self._row_path(collection, key), json=fields)

    async def delete(self, collection: str, key: str) -> None:
        key_column(collection)
        await self._request("DELETE", self._row_path(collection, key))

    async def select(self, collection: str) -> list[dict[str, Any]]:
        key_column(collection)
        response = await self._request("GET", f"/rows/{collection}")
        return response.json()["rows"]

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        """Fetch a single row, or None if it does not exist."""
        key_column(collection)
        try:
            response = await self.client.get(self._row_path(collection, key))
        except httpx.HTTPError as e:
            raise RemoteWriteError(f"GET {collection}/{key} failed: {e}") from e
        if response.status_code == 404:
            return None
        if response.is_error:
            raise RemoteWriteError(
                f"GET {collection}/{key} failed with {response.status_code}"
            )
        return response.json()["row"]

    async def close(self) -> None:
        """Close the client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
