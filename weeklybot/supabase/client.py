"""Synchronous Supabase (PostgREST) client with retry."""

import time
from typing import Any

import httpx
from loguru import logger

from weeklybot.errors import StoreError

# Retry config
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 1.0  # 1s, 2s, 4s


class SupabaseClient:
    """Synchronous PostgREST wrapper with exponential backoff retry.

    Uses httpx.Client (sync). Must be called from a worker thread
    (asyncio.to_thread); backoff sleeps block the calling thread.

    Filters are passed as PostgREST operator pairs:

        client.select("sent_notifications",
                      filters={"notification_id": ("eq", "abc"),
                               "sent_at": ("gte", "2026-10-18T00:00:00+00:00")},
                      order="sent_at.desc", limit=1)
        client.insert("sent_notifications", {"notification_id": "abc", ...})
        client.delete("sent_notifications", filters={"sent_at": ("lt", cutoff)})
    """

    def __init__(self, url: str, key: str, timeout: float = 10.0):
        self._url = url.rstrip("/")
        self._key = key
        self._timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
        }

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=f"{self._url}/rest/v1",
                headers=self._headers,
                timeout=self._timeout,
            )
        return self._client

    def close(self) -> None:
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None

    @staticmethod
    def _params(
        filters: dict[str, tuple[str, Any]] | None,
        select: str | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> dict[str, str]:
        params: dict[str, str] = {}
        if select:
            params["select"] = select
        for column, (op, value) in (filters or {}).items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            params[column] = f"{op}.{value}"
        if order:
            params["order"] = order
        if limit:
            params["limit"] = str(limit)
        return params

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Make an API request with retry."""
        client = self._get_client()
        headers = {"Prefer": prefer} if prefer else None

        for attempt in range(MAX_RETRIES):
            try:
                response = client.request(
                    method, path, params=params, json=json_body, headers=headers
                )

                if response.is_success:
                    if response.status_code == 204 or not response.content:
                        return []
                    return response.json()

                if response.status_code == 429 or response.status_code >= 500:
                    if attempt < MAX_RETRIES - 1:
                        backoff = RETRY_BACKOFF_BASE * (2 ** attempt)
                        logger.warning(
                            f"[Supabase] {response.status_code} on {method} {path}, "
                            f"retrying in {backoff:.1f}s"
                        )
                        time.sleep(backoff)
                        continue
                    raise SupabaseAPIError(response.status_code, response.text)

                # Client error (4xx except 429): no retry
                error_body = response.text
                logger.error(f"[Supabase] API error {response.status_code}: {error_body[:200]}")
                raise SupabaseAPIError(response.status_code, error_body)

            except httpx.TimeoutException:
                if attempt < MAX_RETRIES - 1:
                    backoff = RETRY_BACKOFF_BASE * (2 ** attempt)
                    logger.warning(f"[Supabase] Request timeout, retrying in {backoff:.1f}s")
                    time.sleep(backoff)
                else:
                    raise SupabaseAPIError(0, "Request timed out after all retries")

            except httpx.HTTPError as e:
                if attempt < MAX_RETRIES - 1:
                    backoff = RETRY_BACKOFF_BASE * (2 ** attempt)
                    logger.warning(f"[Supabase] HTTP error: {e}, retrying in {backoff:.1f}s")
                    time.sleep(backoff)
                else:
                    raise SupabaseAPIError(0, f"HTTP error: {e}")

        raise SupabaseAPIError(0, "Max retries exceeded")

    def select(
        self,
        table: str,
        filters: dict[str, tuple[str, Any]] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows matching all filters."""
        params = self._params(filters, select=columns, order=order, limit=limit)
        return self._request("GET", f"/{table}", params=params)

    def insert(self, table: str, row: dict[str, Any]) -> list[dict[str, Any]]:
        """Insert one row and return the stored representation."""
        return self._request("POST", f"/{table}", json_body=row, prefer="return=representation")

    def delete(self, table: str, filters: dict[str, tuple[str, Any]]) -> list[dict[str, Any]]:
        """Delete rows matching all filters and return them.

        Refuses to run without filters (PostgREST would delete every row).
        """
        if not filters:
            raise ValueError("delete() requires at least one filter")
        params = self._params(filters)
        return self._request("DELETE", f"/{table}", params=params, prefer="return=representation")


class SupabaseAPIError(StoreError):
    """Supabase API error with status code and response body."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"Supabase API error ({status_code}): {message}")
