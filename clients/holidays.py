"""Holiday-calendar client.

Uses composition: holds a :class:`BaseHTTPClient` for transport and caches
each ``(jurisdiction, year)`` holiday set in a :class:`TTLCache` so the
calendar service can ask as often as it likes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

from _constants import HOLIDAY_CACHE_SIZE, HOLIDAY_CACHE_TTL
from clients._base import BaseHTTPClient, TTLCache
from leaves.errors import TransientInfrastructureError

__all__ = ["HolidaysClient"]

logger = logging.getLogger("leave_mcp.client")


class HolidaysClient:
    """Fetches ``GET holidays?country=XX&year=YYYY``.

    Expected body: ``{"holidays": [{"date": "YYYY-MM-DD", "name": "..."}, ...]}``.
    Bare date strings in the list are accepted too.
    """

    def __init__(
        self,
        base: BaseHTTPClient,
        *,
        ttl: float = HOLIDAY_CACHE_TTL,
        maxsize: int = HOLIDAY_CACHE_SIZE,
    ) -> None:
        self._base = base
        self._cache: TTLCache[frozenset[date]] = TTLCache(maxsize=maxsize, ttl=ttl)
        # Per-key locks so concurrent misses for one key make one HTTP call.
        self._fetch_locks: dict[str, asyncio.Lock] = {}

    async def holidays_for(self, jurisdiction: str, year: int) -> frozenset[date]:
        code = jurisdiction.upper().strip()
        cache_key = f"{code}:{year}"

        cached = await self._cache.aget(cache_key)
        if cached is not None:
            return cached

        if cache_key not in self._fetch_locks:
            self._fetch_locks[cache_key] = asyncio.Lock()
        lock = self._fetch_locks[cache_key]

        try:
            async with lock:
                cached = await self._cache.aget(cache_key)
                if cached is not None:
                    return cached

                result = await self._base._request(
                    "GET", "holidays", params={"country": code, "year": year}
                )
                if result["status"] != "success":
                    raise TransientInfrastructureError(
                        f"Holiday lookup failed for {code} {year}: {result.get('message')}"
                    )
                holidays = self._parse(result.get("data"), code, year)
                await self._cache.aput(cache_key, holidays)
                logger.debug("Loaded %d holiday(s) for %s %d", len(holidays), code, year)
                return holidays
        finally:
            if not lock.locked():
                self._fetch_locks.pop(cache_key, None)

    @staticmethod
    def _parse(data: Any, code: str, year: int) -> frozenset[date]:
        entries = data.get("holidays", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            logger.warning("Unexpected holiday payload for %s %d: %r", code, year, type(data))
            return frozenset()

        days: set[date] = set()
        for entry in entries:
            raw = entry.get("date") if isinstance(entry, dict) else entry
            try:
                day = date.fromisoformat(str(raw))
            except ValueError:
                logger.warning("Skipping malformed holiday entry for %s %d: %r", code, year, entry)
                continue
            if day.year == year:
                days.add(day)
        return frozenset(days)
