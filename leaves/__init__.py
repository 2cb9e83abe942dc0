"""Leave lifecycle engine and its service registry.

Provides get_registry() / set_registry() around one process-wide
:class:`LeaveServiceRegistry`.  Tests build their own registries and inject
them via set_registry().
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from _constants import NOTIFICATION_BACKOFF_BASE
from leaves.calendar import CalendarService, HolidayProvider
from leaves.dispatcher import NotificationDispatcher, Notifier
from leaves.ledger import BalanceLedger
from leaves.lifecycle import LeaveLifecycleEngine
from leaves.store import LeaveStore

__all__ = ["LeaveServiceRegistry", "get_registry", "set_registry"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class LeaveServiceRegistry:
    """Wires store, calendar, ledger, dispatcher and engine together."""

    store: LeaveStore
    holidays: HolidayProvider
    notifier: Notifier
    clock: Callable[[], datetime] = _utcnow
    backoff_base: float = NOTIFICATION_BACKOFF_BASE
    # Extra async closers (HTTP clients) run by close().
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)
    calendar: CalendarService = field(init=False)
    ledger: BalanceLedger = field(init=False)
    dispatcher: NotificationDispatcher = field(init=False)
    engine: LeaveLifecycleEngine = field(init=False)

    def __post_init__(self) -> None:
        self.calendar = CalendarService(self.holidays)
        self.ledger = BalanceLedger(self.store)
        self.dispatcher = NotificationDispatcher(self.notifier, backoff_base=self.backoff_base)
        self.engine = LeaveLifecycleEngine(
            self.store, self.calendar, self.ledger, self.dispatcher, clock=self.clock
        )

    async def close(self) -> None:
        await self.dispatcher.aclose()
        for closer in self.closers:
            await closer()


_registry: LeaveServiceRegistry | None = None


def get_registry() -> LeaveServiceRegistry:
    """Return the active registry, or raise if not initialized."""
    if _registry is None:
        raise RuntimeError("LeaveServiceRegistry not initialized. Server lifespan has not started.")
    return _registry


def set_registry(registry: LeaveServiceRegistry | None) -> None:
    """Set (or clear) the global registry. Used by lifespan and tests."""
    global _registry
    _registry = registry
