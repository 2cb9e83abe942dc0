"""Persistence contract for the leave engine and an in-memory implementation.

The engine talks to storage only through :class:`LeaveStore`.  Any method may
fail with :class:`~leaves.errors.StorageError`; the engine lets those
propagate.  The conditional methods (``decrement_balance_if_sufficient``,
``transition_if_pending``, ``delete_if_pending``, ``reassign_approver``) must
be atomic at the storage layer; the engine never emulates them with a read
followed by a write.

:class:`InMemoryLeaveStore` serializes every mutation behind one
:class:`asyncio.Lock` and hands out copies so callers cannot mutate stored
state behind its back.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Protocol

from leaves.errors import NotFoundError
from leaves.models import (
    BalanceRecord,
    LeaveCategory,
    LeaveRequest,
    RequestStatus,
    Worker,
)

__all__ = ["InMemoryLeaveStore", "LeaveStore"]


class LeaveStore(Protocol):
    # -- workers ------------------------------------------------------------

    async def get_worker(self, worker_id: str) -> Worker | None: ...

    async def save_worker(self, worker: Worker) -> None: ...

    # -- balances -----------------------------------------------------------

    async def get_balance(self, worker_id: str) -> BalanceRecord | None: ...

    async def create_balance_if_absent(self, record: BalanceRecord) -> BalanceRecord: ...

    async def decrement_balance_if_sufficient(
        self, worker_id: str, category: LeaveCategory, amount: float
    ) -> bool: ...

    async def increment_balance(
        self, worker_id: str, category: LeaveCategory, amount: float
    ) -> None: ...

    # -- requests -----------------------------------------------------------

    async def add_request(self, request: LeaveRequest) -> None: ...

    async def get_request(self, request_id: str) -> LeaveRequest | None: ...

    async def list_requests(
        self,
        *,
        worker_id: str | None = None,
        approver_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> list[LeaveRequest]: ...

    async def transition_if_pending(
        self,
        request_id: str,
        status: RequestStatus,
        *,
        processed_by: str,
        processed_at: datetime,
        comments: str | None = None,
    ) -> LeaveRequest | None: ...

    async def delete_if_pending(self, request_id: str) -> bool: ...

    async def record_reminder(self, request_id: str, sent_at: datetime) -> None: ...

    async def reassign_approver(self, worker_id: str, approver: Worker) -> int: ...


class InMemoryLeaveStore:
    """Process-local :class:`LeaveStore`. Nothing survives a restart."""

    def __init__(self) -> None:
        self._workers: dict[str, Worker] = {}
        self._balances: dict[str, BalanceRecord] = {}
        self._requests: dict[str, LeaveRequest] = {}
        self._lock = asyncio.Lock()

    # -- workers ------------------------------------------------------------

    async def get_worker(self, worker_id: str) -> Worker | None:
        worker = self._workers.get(worker_id)
        return copy.copy(worker) if worker is not None else None

    async def save_worker(self, worker: Worker) -> None:
        async with self._lock:
            self._workers[worker.id] = copy.copy(worker)

    # -- balances -----------------------------------------------------------

    async def get_balance(self, worker_id: str) -> BalanceRecord | None:
        record = self._balances.get(worker_id)
        return copy.copy(record) if record is not None else None

    async def create_balance_if_absent(self, record: BalanceRecord) -> BalanceRecord:
        async with self._lock:
            existing = self._balances.setdefault(record.worker_id, copy.copy(record))
            return copy.copy(existing)

    async def decrement_balance_if_sufficient(
        self, worker_id: str, category: LeaveCategory, amount: float
    ) -> bool:
        async with self._lock:
            record = self._require_balance(worker_id)
            current: float = getattr(record, category.value)
            if current < amount:
                return False
            setattr(record, category.value, current - amount)
            return True

    async def increment_balance(
        self, worker_id: str, category: LeaveCategory, amount: float
    ) -> None:
        async with self._lock:
            record = self._require_balance(worker_id)
            setattr(record, category.value, getattr(record, category.value) + amount)

    def _require_balance(self, worker_id: str) -> BalanceRecord:
        record = self._balances.get(worker_id)
        if record is None:
            raise NotFoundError(f"No balance record for worker {worker_id!r}")
        return record

    # -- requests -----------------------------------------------------------

    async def add_request(self, request: LeaveRequest) -> None:
        async with self._lock:
            if request.id in self._requests:
                raise ValueError(f"Leave request {request.id!r} already exists")
            self._requests[request.id] = copy.copy(request)

    async def get_request(self, request_id: str) -> LeaveRequest | None:
        request = self._requests.get(request_id)
        return copy.copy(request) if request is not None else None

    async def list_requests(
        self,
        *,
        worker_id: str | None = None,
        approver_id: str | None = None,
        status: RequestStatus | None = None,
    ) -> list[LeaveRequest]:
        matches = [
            copy.copy(r)
            for r in self._requests.values()
            if (worker_id is None or r.worker_id == worker_id)
            and (approver_id is None or r.approver_id == approver_id)
            and (status is None or r.status is status)
        ]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return matches

    async def transition_if_pending(
        self,
        request_id: str,
        status: RequestStatus,
        *,
        processed_by: str,
        processed_at: datetime,
        comments: str | None = None,
    ) -> LeaveRequest | None:
        async with self._lock:
            request = self._requests.get(request_id)
            if request is None or not request.is_pending:
                return None
            request.status = status
            request.processed_by = processed_by
            request.processed_at = processed_at
            request.comments = comments
            return copy.copy(request)

    async def delete_if_pending(self, request_id: str) -> bool:
        async with self._lock:
            request = self._requests.get(request_id)
            if request is None or not request.is_pending:
                return False
            del self._requests[request_id]
            return True

    async def record_reminder(self, request_id: str, sent_at: datetime) -> None:
        async with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                # Cancelled or gone since the reminder was queued.
                return
            request.last_reminder_sent = sent_at
            request.reminder_count += 1

    async def reassign_approver(self, worker_id: str, approver: Worker) -> int:
        async with self._lock:
            worker = self._workers.get(worker_id)
            if worker is None:
                raise NotFoundError(f"Worker {worker_id!r} not found")
            pending = [
                r
                for r in self._requests.values()
                if r.worker_id == worker_id and r.is_pending
            ]
            worker.approver_id = approver.id
            for request in pending:
                request.approver_id = approver.id
                request.approver_name = approver.name
                request.approver_email = approver.email
            return len(pending)
