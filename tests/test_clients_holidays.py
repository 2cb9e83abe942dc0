"""Tests for clients/holidays.py -- holiday lookup with caching."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from datetime import date

import httpx
import pytest
import pytest_asyncio
import respx

from clients._base import BaseHTTPClient
from clients.holidays import HolidaysClient
from leaves.calendar import CalendarService
from leaves.errors import TransientInfrastructureError

BASE_URL = "https://holidays.example.com/api"
HOLIDAYS_URL = f"{BASE_URL}/holidays"

PK_2025 = {
    "holidays": [
        {"date": "2025-02-05", "name": "Kashmir Day"},
        {"date": "2025-03-23", "name": "Pakistan Day"},
    ]
}


@pytest_asyncio.fixture
async def holidays() -> AsyncGenerator[HolidaysClient, None]:
    base = BaseHTTPClient(BASE_URL, service_name="Holiday API")
    yield HolidaysClient(base)
    await base.close()


class TestHolidaysFor:
    @respx.mock
    async def test_fetches_and_parses(self, holidays: HolidaysClient) -> None:
        route = respx.get(HOLIDAYS_URL).mock(return_value=httpx.Response(200, json=PK_2025))

        result = await holidays.holidays_for("pk", 2025)

        assert result == frozenset({date(2025, 2, 5), date(2025, 3, 23)})
        params = route.calls.last.request.url.params
        assert params["country"] == "PK"
        assert params["year"] == "2025"

    @respx.mock
    async def test_second_call_is_cached(self, holidays: HolidaysClient) -> None:
        route = respx.get(HOLIDAYS_URL).mock(return_value=httpx.Response(200, json=PK_2025))

        await holidays.holidays_for("PK", 2025)
        await holidays.holidays_for("pk", 2025)

        assert route.call_count == 1

    @respx.mock
    async def test_cache_is_per_jurisdiction_and_year(self, holidays: HolidaysClient) -> None:
        route = respx.get(HOLIDAYS_URL).mock(return_value=httpx.Response(200, json=PK_2025))

        await holidays.holidays_for("PK", 2025)
        await holidays.holidays_for("PK", 2026)
        await holidays.holidays_for("US", 2025)

        assert route.call_count == 3

    @respx.mock
    async def test_concurrent_misses_share_one_fetch(self, holidays: HolidaysClient) -> None:
        route = respx.get(HOLIDAYS_URL).mock(return_value=httpx.Response(200, json=PK_2025))

        results = await asyncio.gather(*(holidays.holidays_for("PK", 2025) for _ in range(5)))

        assert route.call_count == 1
        assert len(set(results)) == 1

    @respx.mock
    async def test_accepts_bare_date_strings(self, holidays: HolidaysClient) -> None:
        respx.get(HOLIDAYS_URL).mock(
            return_value=httpx.Response(200, json=["2025-12-25", "2025-08-14"])
        )
        assert await holidays.holidays_for("PK", 2025) == frozenset(
            {date(2025, 12, 25), date(2025, 8, 14)}
        )

    @respx.mock
    async def test_skips_malformed_and_other_years(
        self, holidays: HolidaysClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        respx.get(HOLIDAYS_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "holidays": [
                        {"date": "not-a-date"},
                        {"name": "No date"},
                        {"date": "2024-12-25"},
                        {"date": "2025-12-25"},
                    ]
                },
            )
        )
        assert await holidays.holidays_for("PK", 2025) == frozenset({date(2025, 12, 25)})
        assert any("malformed holiday" in r.message for r in caplog.records)

    @respx.mock
    async def test_unexpected_payload_is_empty(self, holidays: HolidaysClient) -> None:
        respx.get(HOLIDAYS_URL).mock(return_value=httpx.Response(200, json={"holidays": "none"}))
        assert await holidays.holidays_for("PK", 2025) == frozenset()

    @respx.mock
    async def test_upstream_error_raises_transient(self, holidays: HolidaysClient) -> None:
        respx.get(HOLIDAYS_URL).mock(return_value=httpx.Response(503, json={"error": "down"}))
        with pytest.raises(TransientInfrastructureError, match="Holiday lookup failed"):
            await holidays.holidays_for("PK", 2025)

    @respx.mock
    async def test_errors_are_not_cached(self, holidays: HolidaysClient) -> None:
        route = respx.get(HOLIDAYS_URL)
        route.side_effect = [
            httpx.ConnectError("refused"),
            httpx.Response(200, json=PK_2025),
        ]

        with pytest.raises(TransientInfrastructureError):
            await holidays.holidays_for("PK", 2025)
        assert date(2025, 3, 23) in await holidays.holidays_for("PK", 2025)


class TestCalendarOverHolidaysClient:
    @respx.mock
    async def test_working_days_use_fetched_holidays(self, holidays: HolidaysClient) -> None:
        respx.get(HOLIDAYS_URL).mock(return_value=httpx.Response(200, json=PK_2025))
        calendar = CalendarService(holidays)

        # Mon 2025-02-03 .. Fri 2025-02-07 with Wed 02-05 a holiday.
        assert await calendar.working_days_between(date(2025, 2, 3), date(2025, 2, 7), "PK") == 4
        assert not await calendar.is_business_day(date(2025, 2, 5), "PK")
