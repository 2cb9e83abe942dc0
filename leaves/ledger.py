"""Balance ledger: per-worker leave counters on top of a :class:`LeaveStore`."""

from __future__ import annotations

import logging

from leaves.errors import NotFoundError
from leaves.models import BalanceRecord, LeaveCategory
from leaves.store import LeaveStore

__all__ = ["BalanceLedger"]

logger = logging.getLogger("leave_mcp.engine")


class BalanceLedger:
    """Read, reserve and restore leave days.

    ``reserve`` is the store's atomic conditional decrement, so concurrent
    reservations against the same counter can never drive it below zero.
    """

    def __init__(self, store: LeaveStore) -> None:
        self._store = store

    async def get(self, worker_id: str) -> BalanceRecord | None:
        return await self._store.get_balance(worker_id)

    async def require(self, worker_id: str) -> BalanceRecord:
        record = await self._store.get_balance(worker_id)
        if record is None:
            raise NotFoundError(f"No balance record for worker {worker_id!r}")
        return record

    async def initialize(self, worker_id: str) -> BalanceRecord:
        """Create the default allocation if the worker has none. Idempotent."""
        return await self._store.create_balance_if_absent(BalanceRecord(worker_id=worker_id))

    async def reserve(self, worker_id: str, category: LeaveCategory, amount: float) -> bool:
        """Take *amount* days from *category*.

        Returns ``False`` (and changes nothing) when the balance is too small.
        """
        if amount <= 0:
            raise ValueError("amount must be positive")
        reserved = await self._store.decrement_balance_if_sufficient(worker_id, category, amount)
        if reserved:
            logger.info("Reserved %s %s day(s) for worker=%s", amount, category, worker_id)
        else:
            logger.info(
                "Insufficient %s balance for worker=%s (needed %s)", category, worker_id, amount
            )
        return reserved

    async def restore(self, worker_id: str, category: LeaveCategory, amount: float) -> None:
        """Give *amount* days back to *category*."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        await self._store.increment_balance(worker_id, category, amount)
        logger.info("Restored %s %s day(s) for worker=%s", amount, category, worker_id)
