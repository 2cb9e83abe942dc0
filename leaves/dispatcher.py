"""Best-effort asynchronous notification queue.

Provides :class:`NotificationDispatcher` -- an in-memory job queue that
decouples lifecycle events from the act of sending an email.

Delivery rules:
    * At most ``max_concurrent`` sends are in flight at once.
    * Each send is bounded by ``send_timeout``; a timeout, an exception or a
      ``False`` result all count as one failed attempt.
    * A failed job is requeued ``backoff_base * 2**attempts`` seconds later
      until ``max_attempts`` is reached, then dropped with an error log.
    * Nothing is persisted.  A restart loses every queued and in-flight job.

The queue is driven by the running event loop: ``enqueue`` must be called
from a coroutine (or a callback) on that loop.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from _constants import (
    MAX_CONCURRENT_NOTIFICATIONS,
    MAX_NOTIFICATION_ATTEMPTS,
    NOTIFICATION_BACKOFF_BASE,
    NOTIFICATION_TIMEOUT,
)
from leaves.models import PAYLOAD_TYPES, NotificationKind, NotificationPayload

__all__ = ["NotificationDispatcher", "NotificationJob", "Notifier"]

logger = logging.getLogger("leave_mcp.dispatcher")

JobCallback = Callable[[], Awaitable[None]]


class Notifier(Protocol):
    """Sends one notification.  Returns ``True`` on success; may raise."""

    async def send(self, kind: NotificationKind, payload: NotificationPayload) -> bool: ...


@dataclass(slots=True)
class NotificationJob:
    id: str
    kind: NotificationKind
    payload: NotificationPayload
    attempts: int = 0
    max_attempts: int = MAX_NOTIFICATION_ATTEMPTS
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    # Event-loop clock (loop.time()), not wall-clock.
    not_before: float | None = None
    on_delivered: JobCallback | None = None
    on_dropped: JobCallback | None = None


class NotificationDispatcher:
    """Retrying, bounded-concurrency job runner around a :class:`Notifier`.

    One instance per process in production; tests build their own.
    """

    def __init__(
        self,
        notifier: Notifier,
        *,
        max_concurrent: int = MAX_CONCURRENT_NOTIFICATIONS,
        max_attempts: int = MAX_NOTIFICATION_ATTEMPTS,
        backoff_base: float = NOTIFICATION_BACKOFF_BASE,
        send_timeout: float = NOTIFICATION_TIMEOUT,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if send_timeout <= 0:
            raise ValueError("send_timeout must be > 0")
        self._notifier = notifier
        self._max_concurrent = max_concurrent
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._send_timeout = send_timeout

        self._queue: deque[NotificationJob] = deque()
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._processing = False
        self._closed = False
        self._wakeup: asyncio.TimerHandle | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    # -- public API ---------------------------------------------------------

    def enqueue(
        self,
        kind: NotificationKind | str,
        payload: NotificationPayload,
        delay: float | None = None,
        *,
        on_delivered: JobCallback | None = None,
        on_dropped: JobCallback | None = None,
    ) -> str:
        """Queue a notification and start processing.  Returns the job id.

        *delay* (seconds) keeps the job ineligible until it has elapsed.
        *on_delivered* / *on_dropped* are awaited after a successful send or
        after the job is given up on.
        """
        if self._closed:
            raise RuntimeError("NotificationDispatcher is closed")
        kind = NotificationKind(kind)
        expected = PAYLOAD_TYPES[kind]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{kind} notifications need a {expected.__name__}, got {type(payload).__name__}"
            )
        if delay is not None and delay < 0:
            raise ValueError("delay must be >= 0")

        loop = asyncio.get_running_loop()
        job = NotificationJob(
            id=f"notif_{uuid.uuid4().hex[:12]}",
            kind=kind,
            payload=payload,
            max_attempts=self._max_attempts,
            not_before=loop.time() + delay if delay else None,
            on_delivered=on_delivered,
            on_dropped=on_dropped,
        )
        self._queue.append(job)
        self._idle.clear()
        logger.info("Notification queued: %s (id=%s)", kind, job.id)
        self._process_queue()
        return job.id

    def status(self) -> dict[str, int]:
        in_flight = len(self._in_flight)
        pending = len(self._queue)
        return {"total": in_flight + pending, "in_flight": in_flight, "pending": pending}

    def is_live(self, job_id: str) -> bool:
        """True while *job_id* is queued, retrying or being sent."""
        return job_id in self._in_flight or any(job.id == job_id for job in self._queue)

    def clear(self) -> None:
        """Drop every queued job and cancel in-flight sends.  Test/ops hook."""
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        self._queue.clear()
        self._cancel_wakeup()
        self._idle.set()

    async def join(self) -> None:
        """Wait until nothing is queued or in flight."""
        await self._idle.wait()

    async def aclose(self) -> None:
        """Stop accepting work and abandon whatever is left."""
        self._closed = True
        lost = self.status()["total"]
        tasks = list(self._in_flight.values())
        self.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if lost:
            logger.warning("Notification dispatcher closed with %d undelivered job(s)", lost)

    # -- processing loop ----------------------------------------------------

    def _process_queue(self) -> None:
        if self._processing or self._closed:
            return
        self._processing = True
        try:
            loop = asyncio.get_running_loop()
            now = loop.time()
            deferred: list[NotificationJob] = []
            while self._queue and len(self._in_flight) < self._max_concurrent:
                job = self._queue.popleft()
                if job.not_before is not None and job.not_before > now:
                    deferred.append(job)
                    continue
                self._in_flight[job.id] = loop.create_task(
                    self._run_job(job), name=f"notification-{job.id}"
                )
            self._queue.extend(deferred)
            self._schedule_wakeup(loop)
            if not self._queue and not self._in_flight:
                self._idle.set()
        finally:
            self._processing = False

    def _schedule_wakeup(self, loop: asyncio.AbstractEventLoop) -> None:
        self._cancel_wakeup()
        # A finishing job re-enters the loop on its own when we are at capacity.
        if not self._queue or len(self._in_flight) >= self._max_concurrent:
            return
        due = min(job.not_before or 0.0 for job in self._queue)
        self._wakeup = loop.call_at(due, self._on_wakeup)

    def _on_wakeup(self) -> None:
        self._wakeup = None
        self._process_queue()

    def _cancel_wakeup(self) -> None:
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None

    async def _run_job(self, job: NotificationJob) -> None:
        try:
            logger.debug(
                "Sending notification: %s (id=%s, attempt=%d)", job.kind, job.id, job.attempts + 1
            )
            delivered = await self._send(job)
            if delivered:
                logger.info("Notification sent: %s (id=%s)", job.kind, job.id)
                await self._run_callback(job, job.on_delivered)
            else:
                await self._handle_failure(job)
        finally:
            self._in_flight.pop(job.id, None)
            self._process_queue()

    async def _send(self, job: NotificationJob) -> bool:
        try:
            async with asyncio.timeout(self._send_timeout):
                return bool(await self._notifier.send(job.kind, job.payload))
        except TimeoutError:
            logger.warning(
                "Notification timed out after %.1fs: %s (id=%s)",
                self._send_timeout,
                job.kind,
                job.id,
            )
        except Exception as exc:
            logger.warning("Notification failed: %s (id=%s): %s", job.kind, job.id, exc)
        return False

    async def _handle_failure(self, job: NotificationJob) -> None:
        job.attempts += 1
        if job.attempts < job.max_attempts:
            delay = self._backoff_base * 2**job.attempts
            job.not_before = asyncio.get_running_loop().time() + delay
            self._queue.append(job)
            logger.warning(
                "Retrying notification in %.2fs: %s (id=%s, attempt=%d/%d)",
                delay,
                job.kind,
                job.id,
                job.attempts,
                job.max_attempts,
            )
            return
        logger.error(
            "Notification permanently failed after %d attempts: %s (id=%s)",
            job.max_attempts,
            job.kind,
            job.id,
        )
        await self._run_callback(job, job.on_dropped)

    @staticmethod
    async def _run_callback(job: NotificationJob, callback: JobCallback | None) -> None:
        if callback is None:
            return
        try:
            await callback()
        except Exception:
            logger.exception("Notification callback failed: %s (id=%s)", job.kind, job.id)
