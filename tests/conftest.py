"""Pytest configuration for the leave MCP server tests.

Sets environment variables before any test module imports server.py, which
reads its configuration and loads tool domains at import time.
"""

from __future__ import annotations

import os

os.environ.setdefault("ENABLED_DOMAINS", "leaves,approvals,ops")
os.environ.setdefault("ENABLE_SENSITIVE_DOMAINS", "true")
os.environ.setdefault("NOTIFY_FROM_EMAIL", "noreply@example.com")

# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------

from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from fastmcp.tools.function_tool import FunctionTool

import server as server_module
from leaves import LeaveServiceRegistry, set_registry
from leaves.calendar import StaticHolidayProvider
from leaves.models import NotificationKind, NotificationPayload, Role, Worker
from leaves.store import InMemoryLeaveStore

# 2025-01-06 is a Monday.
START_OF_WEEK = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)
PK_HOLIDAY = date(2025, 1, 20)


def get_tool_fn(name: str):
    """Get a registered tool's underlying async function by name."""
    lp = server_module.mcp.local_provider
    for comp in lp._components.values():
        if isinstance(comp, FunctionTool) and comp.name == name:
            return comp.fn
    available = sorted(
        comp.name for comp in lp._components.values() if isinstance(comp, FunctionTool)
    )
    raise KeyError(f"Tool {name!r} not found. Available: {available}")


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Notifier that records every send.

    *results* is consumed one item per send: a bool is returned, an exception
    is raised.  Once exhausted every send succeeds.
    """

    def __init__(self, results: list[Any] | None = None) -> None:
        self.sent: list[tuple[NotificationKind, NotificationPayload]] = []
        self._results = list(results or [])

    async def send(self, kind: NotificationKind, payload: NotificationPayload) -> bool:
        self.sent.append((kind, payload))
        if self._results:
            result = self._results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return True

    def fail_next(self, count: int) -> None:
        self._results.extend([False] * count)

    def kinds(self) -> list[NotificationKind]:
        return [kind for kind, _ in self.sent]

    def of_kind(self, kind: NotificationKind) -> list[NotificationPayload]:
        return [payload for k, payload in self.sent if k is kind]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START_OF_WEEK)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def holidays() -> StaticHolidayProvider:
    return StaticHolidayProvider({"PK": [PK_HOLIDAY]})


@pytest.fixture
def store() -> InMemoryLeaveStore:
    return InMemoryLeaveStore()


@pytest_asyncio.fixture
async def registry(
    store: InMemoryLeaveStore,
    holidays: StaticHolidayProvider,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> AsyncGenerator[LeaveServiceRegistry, None]:
    reg = LeaveServiceRegistry(
        store=store,
        holidays=holidays,
        notifier=notifier,
        clock=clock,
        backoff_base=0.001,
    )
    yield reg
    await reg.close()


@pytest_asyncio.fixture
async def team(registry: LeaveServiceRegistry) -> tuple[Worker, Worker]:
    """An approver and one worker reporting to them, both in PK."""
    approver = await registry.engine.register_worker(
        "Alice Approver",
        "alice@example.com",
        "PK",
        department="Engineering",
        role=Role.APPROVER,
        worker_id="approver-1",
    )
    worker = await registry.engine.register_worker(
        "Bob Worker",
        "bob@example.com",
        "PK",
        approver_id=approver.id,
        worker_id="worker-1",
    )
    return approver, worker


@pytest.fixture
def active_registry(registry: LeaveServiceRegistry):
    """Install *registry* as the process registry for tool tests."""
    set_registry(registry)
    yield registry
    set_registry(None)
