"""Airtable Web API client.

Handles:
- Metadata reads (bases, tables) with a per-credential TTL cache
- Record CRUD and token-chained listing
- Rate-limit header tracking
- Mapping HTTP failures to ExternalApiError subclasses
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from formbridge.core.config import settings
from formbridge.core.errors import ExternalApiError, RateLimitedError, RecordNotFoundError
from formbridge.services.field_mapper import TableField, map_field

logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    401: "Airtable authentication failed. Please reconnect your account.",
    403: "Permission denied. Check your Airtable API permissions.",
    404: "Resource not found in Airtable.",
    429: "Rate limit exceeded. Please try again later.",
}


# ============================================================================
# Per-credential state
# ============================================================================


@dataclass
class RateLimitState:
    remaining: int | None = None
    reset: int | None = None


class CredentialState:
    """
    Mutable state shared by every client using one access token.

    Holds the metadata cache and the last seen rate-limit headers.
    All access goes through the lock; clients may run on several threads.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, Any]] = {}
        self._rate_limit = RateLimitState()

    def get_cached(self, key: str) -> Any | None:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._cache[key]
                return None
            return value

    def set_cached(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = (self._clock() + self._ttl, value)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def update_rate_limit(self, headers: httpx.Headers) -> None:
        remaining = _parse_int_header(headers.get("ratelimit-remaining"))
        reset = _parse_int_header(headers.get("ratelimit-reset"))
        with self._lock:
            if remaining is not None:
                self._rate_limit.remaining = remaining
            if reset is not None:
                self._rate_limit.reset = reset

    @property
    def rate_limit(self) -> RateLimitState:
        with self._lock:
            return RateLimitState(
                remaining=self._rate_limit.remaining, reset=self._rate_limit.reset
            )


def _parse_int_header(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def token_fingerprint(access_token: str) -> str:
    """Stable, non-reversible key for a token (never log the token itself)."""
    return hashlib.sha256(access_token.encode()).hexdigest()[:16]


class CredentialStateRegistry:
    """Hands out one CredentialState per access token."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._lock = threading.Lock()
        self._ttl = settings.AIRTABLE_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._states: dict[str, CredentialState] = {}

    def for_token(self, access_token: str) -> CredentialState:
        key = token_fingerprint(access_token)
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = CredentialState(self._ttl, clock=self._clock)
                self._states[key] = state
            return state


# ============================================================================
# Result types
# ============================================================================


@dataclass
class AirtableBase:
    id: str
    name: str
    permission_level: str | None = None


@dataclass
class AirtableTable:
    id: str
    name: str
    description: str = ""
    primary_field_id: str | None = None
    fields: list[TableField] = field(default_factory=list)


@dataclass
class RecordPage:
    records: list[dict[str, Any]]
    next_page_token: str | None = None


# ============================================================================
# Client
# ============================================================================


class AirtableClient:
    """Thin async wrapper over the Airtable REST API for one access token."""

    def __init__(
        self,
        access_token: str,
        *,
        state: CredentialState | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.state = state or CredentialState(settings.AIRTABLE_CACHE_TTL_SECONDS)
        self.base_url = (base_url or settings.AIRTABLE_API_BASE).rstrip("/")
        self.timeout = httpx.Timeout(
            timeout if timeout is not None else settings.AIRTABLE_HTTP_TIMEOUT_SECONDS,
            connect=5.0,
        )
        self._transport = transport

    @property
    def rate_limit(self) -> RateLimitState:
        return self.state.rate_limit

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.request(
                    method, url, params=params, json=json, headers=self._headers()
                )
        except httpx.TimeoutException as exc:
            raise ExternalApiError("Airtable API timeout") from exc
        except httpx.RequestError as exc:
            raise ExternalApiError(f"Airtable API connection failed: {exc}") from exc

        self.state.update_rate_limit(resp.headers)

        if resp.status_code >= 400:
            raise _error_for_response(resp)

        if not resp.content:
            return {}
        return resp.json()

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def list_bases(self) -> list[AirtableBase]:
        cached = self.state.get_cached("bases")
        if cached is not None:
            return cached

        data = await self._request("GET", "/meta/bases")
        bases = [
            AirtableBase(
                id=b["id"],
                name=b.get("name", ""),
                permission_level=b.get("permissionLevel"),
            )
            for b in data.get("bases", [])
        ]
        self.state.set_cached("bases", bases)
        return bases

    async def list_tables(self, base_id: str) -> list[AirtableTable]:
        cache_key = f"tables:{base_id}"
        cached = self.state.get_cached(cache_key)
        if cached is not None:
            return cached

        data = await self._request("GET", f"/meta/bases/{base_id}/tables")
        tables = [
            AirtableTable(
                id=t["id"],
                name=t.get("name", ""),
                description=t.get("description") or "",
                primary_field_id=t.get("primaryFieldId"),
                fields=[map_field(f) for f in t.get("fields", [])],
            )
            for t in data.get("tables", [])
        ]
        self.state.set_cached(cache_key, tables)
        return tables

    async def get_table(self, base_id: str, table_id: str) -> AirtableTable | None:
        for table in await self.list_tables(base_id):
            if table.id == table_id:
                return table
        return None

    def clear_cache(self) -> None:
        """Drop cached bases/tables for this credential."""
        self.state.clear_cache()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get_record(self, base_id: str, table_id: str, record_id: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/{base_id}/{table_id}/{record_id}",
            params={"returnFieldsByFieldId": "true"},
        )

    async def create_record(
        self, base_id: str, table_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"/{base_id}/{table_id}",
            json={"fields": fields, "returnFieldsByFieldId": True},
        )
        return {
            "id": data.get("id"),
            "createdTime": data.get("createdTime"),
            "fields": data.get("fields", {}),
        }

    async def update_record(
        self, base_id: str, table_id: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        data = await self._request(
            "PATCH",
            f"/{base_id}/{table_id}/{record_id}",
            json={"fields": fields, "returnFieldsByFieldId": True},
        )
        return {
            "id": data.get("id"),
            "createdTime": data.get("createdTime"),
            "fields": data.get("fields", {}),
        }

    async def delete_record(self, base_id: str, table_id: str, record_id: str) -> bool:
        await self._request("DELETE", f"/{base_id}/{table_id}/{record_id}")
        return True

    async def list_records(
        self,
        base_id: str,
        table_id: str,
        page_token: str | None = None,
        page_size: int | None = None,
    ) -> RecordPage:
        params: dict[str, Any] = {"returnFieldsByFieldId": "true"}
        if page_token:
            params["offset"] = page_token
        if page_size:
            params["pageSize"] = page_size
        data = await self._request("GET", f"/{base_id}/{table_id}", params=params)
        return RecordPage(records=data.get("records", []), next_page_token=data.get("offset"))


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or "Unknown error"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("type") or "Unknown error"
    if isinstance(error, str):
        return error
    return "Unknown error"


def _error_for_response(resp: httpx.Response) -> ExternalApiError:
    status = resp.status_code
    logger.warning("Airtable API %s: %s", status, resp.text[:500])

    if status == 404:
        return RecordNotFoundError(ERROR_MESSAGES[404], status_code=status)
    if status == 429:
        return RateLimitedError(ERROR_MESSAGES[429], status_code=status)
    if status in ERROR_MESSAGES:
        return ExternalApiError(ERROR_MESSAGES[status], status_code=status)
    if status == 422:
        return ExternalApiError(f"Validation error: {_error_message(resp)}", status_code=status)
    return ExternalApiError(f"Airtable API error: {_error_message(resp)}", status_code=status)


ClientFactory = Callable[[str], AirtableClient]


def make_client_factory(
    registry: CredentialStateRegistry,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ClientFactory:
    """Factory binding each token to its shared CredentialState."""

    def factory(access_token: str) -> AirtableClient:
        return AirtableClient(
            access_token, state=registry.for_token(access_token), transport=transport
        )

    return factory
