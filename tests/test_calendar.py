"""Tests for leaves/calendar.py -- business-day arithmetic."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

import pytest

from leaves.calendar import CalendarService, StaticHolidayProvider, is_weekend

# 2025-01-06 is a Monday; 2025-01-20 is a PK holiday in these tests.
MONDAY = date(2025, 1, 6)
FRIDAY = date(2025, 1, 10)
SATURDAY = date(2025, 1, 11)
SUNDAY = date(2025, 1, 12)
HOLIDAY = date(2025, 1, 20)


@pytest.fixture
def provider() -> StaticHolidayProvider:
    return StaticHolidayProvider({"PK": [HOLIDAY, date(2026, 1, 1)]})


@pytest.fixture
def calendar(provider: StaticHolidayProvider) -> CalendarService:
    return CalendarService(provider)


class TestIsWeekend:
    def test_saturday_and_sunday(self) -> None:
        assert is_weekend(SATURDAY)
        assert is_weekend(SUNDAY)

    def test_weekdays(self) -> None:
        assert not is_weekend(MONDAY)
        assert not is_weekend(FRIDAY)


class TestStaticHolidayProvider:
    async def test_lookup_is_case_insensitive(self, provider: StaticHolidayProvider) -> None:
        assert HOLIDAY in await provider.holidays_for("pk", 2025)

    async def test_unknown_jurisdiction_is_empty(self, provider: StaticHolidayProvider) -> None:
        assert await provider.holidays_for("US", 2025) == frozenset()

    async def test_sets_are_per_year(self, provider: StaticHolidayProvider) -> None:
        assert await provider.holidays_for("PK", 2026) == frozenset({date(2026, 1, 1)})

    async def test_add_extends_year_set(self, provider: StaticHolidayProvider) -> None:
        extra = date(2025, 3, 23)
        provider.add("PK", [extra])
        assert {HOLIDAY, extra} <= await provider.holidays_for("PK", 2025)


class TestBusinessDays:
    async def test_weekday_is_business_day(self, calendar: CalendarService) -> None:
        assert await calendar.is_business_day(MONDAY, "PK")

    async def test_weekend_is_not_business_day(self, calendar: CalendarService) -> None:
        assert not await calendar.is_business_day(SATURDAY, "PK")
        assert not await calendar.is_business_day(SUNDAY, "PK")

    async def test_holiday_is_not_business_day(self, calendar: CalendarService) -> None:
        assert await calendar.is_holiday(HOLIDAY, "PK")
        assert not await calendar.is_business_day(HOLIDAY, "PK")

    async def test_holiday_only_applies_to_its_jurisdiction(
        self, calendar: CalendarService
    ) -> None:
        assert await calendar.is_business_day(HOLIDAY, "US")


class TestWorkingDaysBetween:
    async def test_full_week(self, calendar: CalendarService) -> None:
        assert await calendar.working_days_between(MONDAY, SUNDAY, "PK") == 5

    async def test_single_day(self, calendar: CalendarService) -> None:
        assert await calendar.working_days_between(MONDAY, MONDAY, "PK") == 1

    async def test_weekend_only(self, calendar: CalendarService) -> None:
        assert await calendar.working_days_between(SATURDAY, SUNDAY, "PK") == 0

    async def test_start_after_end_is_zero(self, calendar: CalendarService) -> None:
        assert await calendar.working_days_between(FRIDAY, MONDAY, "PK") == 0

    async def test_holiday_excluded(self, calendar: CalendarService) -> None:
        # Mon 2025-01-20 .. Fri 2025-01-24 with the Monday a holiday.
        assert await calendar.working_days_between(HOLIDAY, date(2025, 1, 24), "PK") == 4
        assert await calendar.working_days_between(HOLIDAY, date(2025, 1, 24), "US") == 5

    async def test_span_across_years_uses_both_sets(self, calendar: CalendarService) -> None:
        # Wed 2025-12-31 .. Fri 2026-01-02; 2026-01-01 is a holiday.
        assert await calendar.working_days_between(date(2025, 12, 31), date(2026, 1, 2), "PK") == 2

    async def test_one_lookup_per_year(self) -> None:
        provider = AsyncMock()
        provider.holidays_for.return_value = frozenset()
        calendar = CalendarService(provider)

        await calendar.working_days_between(date(2025, 1, 1), date(2025, 12, 31), "PK")

        provider.holidays_for.assert_awaited_once_with("PK", 2025)


class TestNextAndPreviousBusinessDay:
    async def test_next_skips_weekend(self, calendar: CalendarService) -> None:
        assert await calendar.next_business_day(FRIDAY, "PK") == date(2025, 1, 13)

    async def test_next_is_strictly_after(self, calendar: CalendarService) -> None:
        assert await calendar.next_business_day(MONDAY, "PK") == date(2025, 1, 7)

    async def test_next_skips_weekend_and_holiday(self, calendar: CalendarService) -> None:
        # Fri 2025-01-17 -> weekend -> holiday Monday -> Tue 2025-01-21
        assert await calendar.next_business_day(date(2025, 1, 17), "PK") == date(2025, 1, 21)

    async def test_previous_skips_weekend(self, calendar: CalendarService) -> None:
        assert await calendar.previous_business_day(date(2025, 1, 13), "PK") == FRIDAY

    async def test_previous_skips_holiday(self, calendar: CalendarService) -> None:
        assert await calendar.previous_business_day(date(2025, 1, 21), "PK") == date(2025, 1, 17)

    async def test_scan_is_bounded(self) -> None:
        first, last = date(2025, 1, 1).toordinal(), date(2027, 1, 1).toordinal()
        every_day = {date.fromordinal(n) for n in range(first, last)}
        calendar = CalendarService(StaticHolidayProvider({"XX": every_day}))
        with pytest.raises(ValueError, match="No business day"):
            await calendar.next_business_day(date(2025, 1, 1), "XX")
