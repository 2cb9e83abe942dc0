"""Business-day arithmetic over weekends and per-jurisdiction holidays.

:class:`CalendarService` never caches holiday data itself; the provider it is
given decides how fresh the sets are (``HolidaysClient`` caches for five
minutes, :class:`StaticHolidayProvider` is fixed).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from typing import Protocol

from _constants import MAX_CALENDAR_SCAN_DAYS

__all__ = ["CalendarService", "HolidayProvider", "StaticHolidayProvider", "is_weekend"]

_ONE_DAY = timedelta(days=1)


class HolidayProvider(Protocol):
    async def holidays_for(self, jurisdiction: str, year: int) -> frozenset[date]: ...


class StaticHolidayProvider:
    """Holiday sets held in memory, keyed by ``(jurisdiction, year)``.

    Jurisdiction codes are matched case-insensitively.  Unknown keys yield an
    empty set.
    """

    def __init__(self, holidays: Mapping[str, Iterable[date]] | None = None) -> None:
        self._sets: dict[tuple[str, int], set[date]] = {}
        for jurisdiction, days in (holidays or {}).items():
            self.add(jurisdiction, days)

    def add(self, jurisdiction: str, days: Iterable[date]) -> None:
        code = jurisdiction.upper().strip()
        for day in days:
            self._sets.setdefault((code, day.year), set()).add(day)

    async def holidays_for(self, jurisdiction: str, year: int) -> frozenset[date]:
        return frozenset(self._sets.get((jurisdiction.upper().strip(), year), ()))


def is_weekend(day: date) -> bool:
    """Saturday or Sunday."""
    return day.weekday() >= 5


class CalendarService:
    def __init__(self, holidays: HolidayProvider) -> None:
        self._holidays = holidays

    async def is_holiday(self, day: date, jurisdiction: str) -> bool:
        return day in await self._holidays.holidays_for(jurisdiction, day.year)

    async def is_business_day(self, day: date, jurisdiction: str) -> bool:
        """False for weekends and for the jurisdiction's holidays of that year."""
        if is_weekend(day):
            return False
        return not await self.is_holiday(day, jurisdiction)

    async def working_days_between(self, start: date, end: date, jurisdiction: str) -> int:
        """Count business days in the inclusive range ``[start, end]``.

        Returns 0 when ``start > end``.
        """
        if start > end:
            return 0
        # One lookup per calendar year spanned, then a plain day walk.
        holidays: set[date] = set()
        for year in range(start.year, end.year + 1):
            holidays |= await self._holidays.holidays_for(jurisdiction, year)

        count = 0
        current = start
        while current <= end:
            if not is_weekend(current) and current not in holidays:
                count += 1
            current += _ONE_DAY
        return count

    async def next_business_day(self, day: date, jurisdiction: str) -> date:
        """Smallest business day strictly after *day*."""
        return await self._scan(day, jurisdiction, _ONE_DAY)

    async def previous_business_day(self, day: date, jurisdiction: str) -> date:
        """Largest business day strictly before *day*."""
        return await self._scan(day, jurisdiction, -_ONE_DAY)

    async def _scan(self, day: date, jurisdiction: str, step: timedelta) -> date:
        current = day
        for _ in range(MAX_CALENDAR_SCAN_DAYS):
            current += step
            if await self.is_business_day(current, jurisdiction):
                return current
        raise ValueError(
            f"No business day within {MAX_CALENDAR_SCAN_DAYS} days of {day.isoformat()} "
            f"for jurisdiction {jurisdiction!r}"
        )
