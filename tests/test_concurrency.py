"""Concurrent approval tests.

The store used here yields to the event loop before every read, so
coroutines started together genuinely interleave between their checks and
their writes.
"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from leaves import LeaveServiceRegistry
from leaves.errors import ConflictError
from leaves.models import BalanceRecord, LeaveCategory, LeaveRequest, RequestStatus, Worker
from leaves.store import InMemoryLeaveStore


class YieldingStore(InMemoryLeaveStore):
    async def get_worker(self, worker_id: str) -> Worker | None:
        await asyncio.sleep(0)
        return await super().get_worker(worker_id)

    async def get_request(self, request_id: str) -> LeaveRequest | None:
        await asyncio.sleep(0)
        return await super().get_request(request_id)

    async def get_balance(self, worker_id: str) -> BalanceRecord | None:
        await asyncio.sleep(0)
        return await super().get_balance(worker_id)


@pytest.fixture
def store() -> InMemoryLeaveStore:
    return YieldingStore()


class TestConcurrentApprovals:
    async def test_two_requests_one_day_left(
        self, registry: LeaveServiceRegistry, team: tuple[Worker, Worker]
    ) -> None:
        approver, worker = team
        engine = registry.engine
        first = await engine.create_request(
            worker.id, "casual", date(2025, 1, 13), date(2025, 1, 13), "a"
        )
        second = await engine.create_request(
            worker.id, "casual", date(2025, 1, 14), date(2025, 1, 14), "b"
        )
        await registry.ledger.reserve(worker.id, LeaveCategory.CASUAL, 5)

        results = await asyncio.gather(
            engine.process_request(first, approver.id, "approved"),
            engine.process_request(second, approver.id, "approved"),
            return_exceptions=True,
        )

        approved = [r for r in results if isinstance(r, LeaveRequest)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(approved) == 1
        assert len(conflicts) == 1
        assert (await engine.get_balance(worker.id)).casual == 0

        statuses = sorted(
            [(await registry.store.get_request(rid)).status for rid in (first, second)]
        )
        assert statuses == [RequestStatus.APPROVED, RequestStatus.PENDING]

    async def test_same_request_approved_twice(
        self, registry: LeaveServiceRegistry, team: tuple[Worker, Worker]
    ) -> None:
        approver, worker = team
        engine = registry.engine
        request_id = await engine.create_request(
            worker.id, "casual", date(2025, 1, 13), date(2025, 1, 14), "a"
        )

        results = await asyncio.gather(
            engine.process_request(request_id, approver.id, "approved"),
            engine.process_request(request_id, approver.id, "approved"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, LeaveRequest) for r in results) == 1
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        # The losing approval's reservation is handed back.
        assert (await engine.get_balance(worker.id)).casual == 4

    async def test_approve_and_reject_race(
        self, registry: LeaveServiceRegistry, team: tuple[Worker, Worker]
    ) -> None:
        approver, worker = team
        engine = registry.engine
        request_id = await engine.create_request(
            worker.id, "casual", date(2025, 1, 13), date(2025, 1, 13), "a"
        )

        results = await asyncio.gather(
            engine.process_request(request_id, approver.id, "rejected"),
            engine.process_request(request_id, approver.id, "approved"),
            return_exceptions=True,
        )

        winner = next(r for r in results if isinstance(r, LeaveRequest))
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        expected_casual = 5 if winner.status is RequestStatus.APPROVED else 6
        assert (await engine.get_balance(worker.id)).casual == expected_casual
