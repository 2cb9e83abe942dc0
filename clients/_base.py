"""Shared HTTP transport and TTL cache for outbound clients.

Provides ``BaseHTTPClient`` -- a thin async wrapper over ``httpx`` used by the
holiday-calendar client and the SendGrid notifier -- and ``TTLCache``, the
bounded LRU cache that keeps holiday lookups fresh for a few minutes.

Transport rules:
    * ``_request`` returns result dicts for 4xx/5xx and transport failures;
      it never raises on HTTP errors.  Callers decide what an error means.
    * Redirects are not followed.
    * Plain ``http://`` is only accepted for loopback hosts.
"""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Generic, TypeVar
from urllib.parse import urlparse

import httpx

__all__ = ["BaseHTTPClient", "TTLCache"]

logger = logging.getLogger("leave_mcp.client")

T = TypeVar("T")

# ---------------------------------------------------------------------------
# TTLCache
# ---------------------------------------------------------------------------


class TTLCache(Generic[T]):
    """Bounded LRU cache with per-entry TTL expiry.

    Clock source: :func:`time.monotonic`.  The sync helpers are not
    async-safe; coroutines sharing one cache use ``aget``/``aput``.
    """

    __slots__ = ("_data", "_lock", "_maxsize", "_ttl")

    def __init__(self, maxsize: int = 256, ttl: float = 300.0) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self._maxsize = maxsize
        self._ttl = ttl
        # value stored as (payload, expires_at)
        self._data: OrderedDict[str, tuple[T, float]] = OrderedDict()
        self._lock = asyncio.Lock()

    def _get(self, key: str) -> T | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    def _put(self, key: str, value: T) -> None:
        if key in self._data:
            del self._data[key]
        elif len(self._data) >= self._maxsize:
            self._data.popitem(last=False)
        self._data[key] = (value, time.monotonic() + self._ttl)

    async def aget(self, key: str) -> T | None:
        async with self._lock:
            return self._get(key)

    async def aput(self, key: str, value: T) -> None:
        async with self._lock:
            self._put(key, value)

    def __len__(self) -> int:
        """Count of non-expired entries (no eviction)."""
        now = time.monotonic()
        return sum(1 for _, exp in self._data.values() if exp > now)


# ---------------------------------------------------------------------------
# BaseHTTPClient
# ---------------------------------------------------------------------------


class BaseHTTPClient:
    """Async JSON-over-HTTP transport bound to one base URL.

    *auth_header*, when given, is sent verbatim as ``Authorization`` on every
    request (e.g. ``"Bearer <key>"``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth_header: str | None = None,
        timeout: float = 10.0,
        service_name: str = "upstream",
    ) -> None:
        parsed = urlparse(base_url)
        host = (parsed.hostname or "").lower()

        if parsed.scheme != "https" and not self._is_loopback(host):
            raise ValueError(
                f"Non-HTTPS base_url is only permitted for localhost. Got: {base_url}"
            )

        self._base_url: str = base_url.rstrip("/")
        self._auth_header = auth_header
        self._service_name = service_name
        self._http: httpx.AsyncClient = httpx.AsyncClient(
            follow_redirects=False,
            timeout=httpx.Timeout(timeout, connect=5.0),
            verify=True,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def close(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _is_loopback(host: str) -> bool:
        """Check if host is a loopback address (localhost, 127.x.x.x, ::1, etc.)."""
        if host == "localhost":
            return True
        try:
            return ipaddress.ip_address(host.strip("[]")).is_loopback
        except ValueError:
            return False

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request.  Returns ``{"status": "success", "data": ...}`` or an error dict."""
        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._auth_header:
            headers["Authorization"] = self._auth_header
        if data is not None:
            headers["Content-Type"] = "application/json"

        try:
            response = await self._http.request(
                method,
                url,
                json=data,
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            logger.warning("%s %s %s timed out: %s", self._service_name, method, endpoint, exc)
            return {
                "status": "error",
                "message": f"{self._service_name} request timed out.",
            }
        except httpx.TransportError as exc:
            logger.warning(
                "%s %s %s transport error: %s", self._service_name, method, endpoint, exc
            )
            return {
                "status": "error",
                "message": f"{self._service_name} temporarily unavailable.",
            }

        try:
            response_data = response.json()
        except (json.JSONDecodeError, ValueError):
            response_data = {"text": response.text[:500]}

        if response.status_code >= 400:
            logger.warning(
                "%s %s %s returned status=%d",
                self._service_name,
                method,
                endpoint,
                response.status_code,
            )
            error_msg: Any = f"API error: {response.status_code}"
            if isinstance(response_data, dict):
                errors = response_data.get("errors")
                if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                    error_msg = errors[0].get("message") or error_msg
                else:
                    error_msg = (
                        response_data.get("error") or response_data.get("detail") or error_msg
                    )
            error_msg = str(error_msg)
            if len(error_msg) > 500:
                error_msg = error_msg[:500] + "..."
            return {
                "status": "error",
                "message": error_msg,
                "status_code": response.status_code,
            }

        return {"status": "success", "data": response_data, "status_code": response.status_code}
