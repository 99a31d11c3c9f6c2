"""Async client for the hosted backend's PostgREST interface."""

import asyncio
from typing import Any, Sequence

import httpx
import structlog

from aguia_dashboard.clients.query import Filter, render
from aguia_dashboard.config import get_settings
from aguia_dashboard.errors import StoreError

logger = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"


class SupabaseError(StoreError):
    """Base exception for store API errors."""

    pass


class AuthenticationError(SupabaseError):
    """API key rejected by the store."""

    pass


class RateLimitError(SupabaseError):
    """Rate limit exceeded."""

    pass


class UniqueViolationError(SupabaseError):
    """Insert conflicted with a unique index."""

    pass


class SupabaseClient:
    """Async client for table access over PostgREST."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self._api_key = api_key or settings.supabase_key.get_secret_value()
        self._timeout = timeout if timeout is not None else settings.supabase_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.supabase_max_retries
        )
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SupabaseClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    # === Generic Request Method ===

    @staticmethod
    def _can_resend(method: str, error: httpx.RequestError) -> bool:
        """A POST is only resent when it never reached the server."""
        if method != "POST":
            return True
        return isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout))

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make a request with retry on transport failures."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(prefer),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries and self._can_resend(method, e):
                logger.warning(
                    "store_request_retry",
                    method=method,
                    path=path,
                    attempt=retry_count + 1,
                    error=str(e),
                )
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(
                    method, path, params, json, prefer, retry_count + 1
                )
            raise SupabaseError(f"Request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Store rejected credentials", status_code=response.status_code
            )

        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", "60"))
            raise RateLimitError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {
                    "raw": response.text[:500] if response.text else "empty response"
                }
            message = f"Store error: {response.status_code}"
            if isinstance(error_detail, dict) and error_detail.get("message"):
                message = f"{message} {error_detail['message']}"
            error_cls = SupabaseError
            if isinstance(error_detail, dict) and error_detail.get("code") == UNIQUE_VIOLATION:
                error_cls = UniqueViolationError
            raise error_cls(message, status_code=response.status_code, details=error_detail)

        return response.json() if response.content else None

    @staticmethod
    def _rows(result: Any) -> list[dict[str, Any]]:
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            return [result]
        return []

    # === Table Operations ===

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows from a table."""
        params = [("select", columns), *render(filters)]
        if order:
            params.append(("order", ",".join(order)))
        if limit is not None:
            params.append(("limit", str(limit)))
        result = await self._request("GET", f"/rest/v1/{table}", params=params)
        return self._rows(result)

    async def insert(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        on_conflict: str | None = None,
    ) -> list[dict[str, Any]]:
        """Insert rows; with ``on_conflict`` colliding rows are merged (upsert)."""
        params: list[tuple[str, str]] = []
        prefer = "return=representation"
        if on_conflict:
            params.append(("on_conflict", on_conflict))
            prefer = "resolution=merge-duplicates,return=representation"
        payload = rows if isinstance(rows, list) else [rows]
        result = await self._request(
            "POST", f"/rest/v1/{table}", params=params, json=payload, prefer=prefer
        )
        return self._rows(result)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        """Update rows matching filters."""
        if not filters:
            raise ValueError("update requires at least one filter")
        result = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=render(filters),
            json=values,
            prefer="return=representation",
        )
        return self._rows(result)

