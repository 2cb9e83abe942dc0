"""Leave-request lifecycle engine.

State machine::

    pending --approve--> approved   (terminal, balance reserved)
    pending --reject---> rejected   (terminal)
    pending --cancel---> (deleted)

Creation runs every validation rule and reports all violations at once.
Notifications go through the :class:`NotificationDispatcher` and never fail
or block the lifecycle operation that triggered them.
"""

from __future__ import annotations

import functools
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

from _constants import (
    AUTO_APPROVAL_COMMENT,
    MAX_ADVANCE_DAYS,
    MAX_COMMENTS_LEN,
    MAX_JUSTIFICATION_LEN,
    REMINDER_INTERVAL_DAYS,
    SICK_DOCUMENT_THRESHOLD_DAYS,
)
from leaves.calendar import CalendarService
from leaves.dispatcher import JobCallback, NotificationDispatcher
from leaves.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    Violation,
)
from leaves.ledger import BalanceLedger
from leaves.models import (
    ApproverChangedPayload,
    BalanceRecord,
    Decision,
    LeaveCategory,
    LeaveRequest,
    NotificationKind,
    NotificationPayload,
    ReminderPayload,
    RequestCreatedPayload,
    RequestStatus,
    Role,
    SweepResult,
    Worker,
)
from leaves.store import LeaveStore

__all__ = ["LeaveLifecycleEngine", "count_leave_days"]

logger = logging.getLogger("leave_mcp.engine")

_AUTO_APPROVABLE: frozenset[LeaveCategory] = frozenset(
    {LeaveCategory.CASUAL, LeaveCategory.PRIVILEGE}
)
_CONFLICT_CODES: frozenset[str] = frozenset({"duplicate_request", "overlapping_request"})
_BLOCKING_STATUSES: frozenset[RequestStatus] = frozenset(
    {RequestStatus.PENDING, RequestStatus.APPROVED}
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def count_leave_days(start: date, end: date, half_day: bool, working_days: int) -> float:
    """Days charged for a request.

    Same day: 1, or 0.5 for a half day.  Longer ranges: the working days in
    the range, less 0.5 for a half day, never below 0.5.
    """
    if start == end:
        return 0.5 if half_day else 1.0
    if half_day:
        return max(0.5, working_days - 0.5)
    return float(working_days)


class LeaveLifecycleEngine:
    """Validates, creates, transitions and cancels leave requests."""

    def __init__(
        self,
        store: LeaveStore,
        calendar: CalendarService,
        ledger: BalanceLedger,
        dispatcher: NotificationDispatcher,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._clock = clock
        # Request id -> job id of the last reminder queued for it.
        self._reminder_jobs: dict[str, str] = {}

    # -- administration -----------------------------------------------------

    async def register_worker(
        self,
        name: str,
        email: str,
        jurisdiction: str,
        *,
        department: str = "",
        role: Role = Role.WORKER,
        approver_id: str | None = None,
        worker_id: str | None = None,
    ) -> Worker:
        """Create a worker and its default balance record."""
        if not name.strip() or not email.strip() or not jurisdiction.strip():
            raise ValueError("name, email and jurisdiction are required.")
        if approver_id is not None:
            approver = await self._require_worker(approver_id)
            if not approver.can_approve:
                raise ValueError(f"Worker {approver_id!r} cannot approve leave requests.")

        worker = Worker(
            id=worker_id or f"wrk_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            email=email.strip(),
            jurisdiction=jurisdiction.upper().strip(),
            department=department.strip(),
            approver_id=approver_id,
            role=Role(role),
        )
        await self._store.save_worker(worker)
        await self._ledger.initialize(worker.id)
        logger.info("Worker registered: %s (role=%s)", worker.id, worker.role)
        return worker

    async def reassign_approver(self, worker_id: str, new_approver_id: str) -> int:
        """Point *worker_id* at a new approver.

        The worker record and every pending request's cached approver fields
        are rewritten in one store operation.  Returns the number of pending
        requests that moved.
        """
        worker = await self._require_worker(worker_id)
        approver = await self._require_worker(new_approver_id)
        if approver.id == worker.id:
            raise ValidationError(
                [Violation("invalid_approver", "A worker cannot approve their own requests.")]
            )
        if not approver.can_approve:
            raise ValidationError(
                [Violation("invalid_approver", f"{approver.name} cannot approve leave requests.")]
            )

        moved = await self._store.reassign_approver(worker.id, approver)
        logger.info(
            "Approver reassigned: worker=%s approver=%s pending_requests=%d",
            worker.id,
            approver.id,
            moved,
        )
        self._notify(
            NotificationKind.APPROVER_CHANGED,
            ApproverChangedPayload(
                worker_email=worker.email,
                worker_name=worker.name,
                approver_name=approver.name,
                approver_department=approver.department,
                reassigned_requests=moved,
            ),
        )
        return moved

    # -- reads --------------------------------------------------------------

    async def get_balance(self, worker_id: str) -> BalanceRecord:
        await self._require_worker(worker_id)
        return await self._ledger.require(worker_id)

    async def list_requests(self, worker_id: str) -> list[LeaveRequest]:
        await self._require_worker(worker_id)
        return await self._store.list_requests(worker_id=worker_id)

    async def list_pending_for_approver(self, approver_id: str) -> list[LeaveRequest]:
        await self._require_worker(approver_id)
        return await self._store.list_requests(
            approver_id=approver_id, status=RequestStatus.PENDING
        )

    # -- creation -----------------------------------------------------------

    async def create_request(
        self,
        worker_id: str,
        category: LeaveCategory | str,
        start: date | None,
        end: date | None,
        justification: str | None,
        half_day: bool = False,
        document_ref: str | None = None,
    ) -> str:
        """Validate and store a new ``pending`` request.  Returns its id.

        Raises:
            NotFoundError: Unknown worker.
            ValidationError: One or more rules failed (all are listed).
            ConflictError: The only failures are duplicate / overlap clashes.
        """
        worker = await self._require_worker(worker_id)
        violations: list[Violation] = []

        try:
            leave_category: LeaveCategory | None = LeaveCategory(category)
        except ValueError:
            leave_category = None
            violations.append(
                Violation("invalid_category", f"Unknown leave category: {category!r}.")
            )

        reason = (justification or "").strip()
        if start is None or end is None:
            violations.append(Violation("missing_field", "Start and end dates are required."))
        if not reason:
            violations.append(Violation("missing_field", "A justification is required."))
        elif len(reason) > MAX_JUSTIFICATION_LEN:
            violations.append(
                Violation(
                    "justification_too_long",
                    f"Justification is too long (max {MAX_JUSTIFICATION_LEN} characters).",
                )
            )

        number_of_days = 0.0
        dates_valid = start is not None and end is not None
        if dates_valid and end < start:
            violations.append(
                Violation("invalid_range", "End date cannot be before start date.")
            )
            dates_valid = False

        if dates_valid:
            if end > self._today() + timedelta(days=MAX_ADVANCE_DAYS):
                violations.append(
                    Violation(
                        "too_far_ahead",
                        f"Cannot request leave more than {MAX_ADVANCE_DAYS} days in advance.",
                    )
                )
            violations.extend(await self._business_day_violations(start, end, worker))

            working_days = await self._calendar.working_days_between(
                start, end, worker.jurisdiction
            )
            number_of_days = count_leave_days(start, end, half_day, working_days)

            if leave_category is not None:
                balance = await self._ledger.require(worker.id)
                available = balance.available(leave_category)
                if number_of_days > available:
                    violations.append(
                        Violation(
                            "insufficient_balance",
                            f"Insufficient {leave_category} balance: requested "
                            f"{number_of_days:g} day(s), available {available:g}.",
                        )
                    )
                if (
                    leave_category is LeaveCategory.SICK
                    and number_of_days > SICK_DOCUMENT_THRESHOLD_DAYS
                    and not (document_ref or "").strip()
                ):
                    violations.append(
                        Violation(
                            "document_required",
                            "Sick leave longer than "
                            f"{SICK_DOCUMENT_THRESHOLD_DAYS:g} days needs a supporting document.",
                        )
                    )

        approver = await self._resolve_approver(worker, violations)

        if dates_valid:
            clash = await self._find_clash(worker.id, leave_category, start, end)
            if clash is not None:
                violations.append(clash)

        if violations:
            logger.info(
                "Leave request rejected for worker=%s: %s",
                worker.id,
                ", ".join(v.code for v in violations),
            )
            if all(v.code in _CONFLICT_CODES for v in violations):
                raise ConflictError(violations[0].message, violations)
            raise ValidationError(violations)

        request = LeaveRequest(
            id=f"req_{uuid.uuid4().hex[:12]}",
            worker_id=worker.id,
            category=leave_category,
            start=start,
            end=end,
            justification=reason,
            number_of_days=number_of_days,
            created_at=self._clock(),
            half_day=half_day,
            has_supporting_document=bool((document_ref or "").strip()),
            approver_id=approver.id,
            approver_name=approver.name,
            approver_email=approver.email,
        )
        await self._store.add_request(request)
        logger.info(
            "Leave request created: %s worker=%s category=%s days=%g",
            request.id,
            worker.id,
            request.category,
            number_of_days,
        )

        self._notify(
            NotificationKind.REQUEST_CREATED,
            RequestCreatedPayload(
                approver_email=approver.email,
                approver_name=approver.name,
                worker_name=worker.name,
                start=start,
                end=end,
                category=request.category,
            ),
        )
        return request.id

    async def _business_day_violations(
        self, start: date, end: date, worker: Worker
    ) -> list[Violation]:
        found: list[Violation] = []
        checks = [("Start", start)] if start == end else [("Start", start), ("End", end)]
        for label, day in checks:
            if not await self._calendar.is_business_day(day, worker.jurisdiction):
                found.append(
                    Violation(
                        "non_business_day",
                        f"{label} date {day.isoformat()} is a weekend or holiday.",
                    )
                )
        return found

    async def _resolve_approver(
        self, worker: Worker, violations: list[Violation]
    ) -> Worker | None:
        if worker.approver_id is None:
            violations.append(
                Violation("no_approver", "No approver is assigned; contact your administrator.")
            )
            return None
        approver = await self._store.get_worker(worker.approver_id)
        if approver is None:
            violations.append(
                Violation("no_approver", "The assigned approver no longer exists.")
            )
        return approver

    async def _find_clash(
        self,
        worker_id: str,
        category: LeaveCategory | None,
        start: date,
        end: date,
    ) -> Violation | None:
        overlap: LeaveRequest | None = None
        for existing in await self._store.list_requests(worker_id=worker_id):
            if existing.status not in _BLOCKING_STATUSES or not existing.overlaps(start, end):
                continue
            if existing.start == start and existing.end == end and existing.category == category:
                return Violation(
                    "duplicate_request",
                    f"An identical {existing.status} {existing.category} request already "
                    f"exists for {start.isoformat()} to {end.isoformat()}.",
                )
            overlap = overlap or existing
        if overlap is None:
            return None
        return Violation(
            "overlapping_request",
            f"Dates overlap an existing {overlap.status} request "
            f"({overlap.start.isoformat()} to {overlap.end.isoformat()}).",
        )

    # -- transitions --------------------------------------------------------

    async def process_request(
        self,
        request_id: str,
        approver_id: str,
        decision: Decision | str,
        comments: str | None = None,
    ) -> LeaveRequest:
        """Approve or reject a pending request.  Returns the stamped request.

        Raises:
            NotFoundError: Unknown request (or owning worker).
            ConflictError: Not pending, or not enough balance to approve.
            AuthorizationError: *approver_id* does not manage the worker.
        """
        decision = Decision(decision)
        if comments is not None and len(comments) > MAX_COMMENTS_LEN:
            raise ValidationError(
                [
                    Violation(
                        "comments_too_long",
                        f"Comments are too long (max {MAX_COMMENTS_LEN} characters).",
                    )
                ]
            )

        request = await self._require_request(request_id)
        if not request.is_pending:
            raise ConflictError(f"Leave request {request_id} is not pending ({request.status}).")
        worker = await self._require_worker(request.worker_id)
        if worker.approver_id is None or worker.approver_id != approver_id:
            logger.warning(
                "Approver %s tried to process request %s of worker %s",
                approver_id,
                request_id,
                worker.id,
            )
            raise AuthorizationError("You can only process requests for your team members.")

        if decision is Decision.APPROVED:
            processed = await self._approve(request, processed_by=approver_id, comments=comments)
        else:
            processed = await self._store.transition_if_pending(
                request.id,
                RequestStatus.REJECTED,
                processed_by=approver_id,
                processed_at=self._clock(),
                comments=comments,
            )
            if processed is None:
                raise ConflictError(f"Leave request {request_id} is no longer pending.")
        logger.info("Leave request %s %s by %s", request.id, processed.status, approver_id)
        return processed

    async def _approve(
        self, request: LeaveRequest, *, processed_by: str, comments: str | None
    ) -> LeaveRequest:
        reserved = await self._ledger.reserve(
            request.worker_id, request.category, request.number_of_days
        )
        if not reserved:
            message = (
                f"Insufficient {request.category} balance to approve "
                f"{request.number_of_days:g} day(s)."
            )
            raise ConflictError(message, [Violation("insufficient_balance", message)])

        try:
            approved = await self._store.transition_if_pending(
                request.id,
                RequestStatus.APPROVED,
                processed_by=processed_by,
                processed_at=self._clock(),
                comments=comments,
            )
        except Exception:
            await self._ledger.restore(request.worker_id, request.category, request.number_of_days)
            raise
        if approved is None:
            # Someone else processed this request after our reservation.
            await self._ledger.restore(request.worker_id, request.category, request.number_of_days)
            raise ConflictError(f"Leave request {request.id} is no longer pending.")
        return approved

    async def cancel_request(self, request_id: str, worker_id: str | None = None) -> None:
        """Delete a pending request.  No balance effect.

        When *worker_id* is given it must own the request.
        """
        request = await self._require_request(request_id)
        if worker_id is not None and request.worker_id != worker_id:
            raise AuthorizationError("You can only cancel your own leave requests.")
        if not request.is_pending:
            raise ConflictError(
                f"Only pending requests can be cancelled; {request_id} is {request.status}."
            )
        if not await self._store.delete_if_pending(request_id):
            raise ConflictError(f"Leave request {request_id} is no longer pending.")
        self._reminder_jobs.pop(request_id, None)
        logger.info("Leave request cancelled: %s", request_id)

    # -- scheduled sweeps ---------------------------------------------------

    def should_auto_approve(
        self,
        start: date,
        end: date,
        category: LeaveCategory,
        number_of_days: float,
    ) -> bool:
        """Past-dated casual or privilege leave is approved without a human.

        Sick leave never is, whatever its dates or length: it needs someone to
        check the supporting document.  *end* and *number_of_days* do not
        change the outcome.
        """
        return start < self._today() and category in _AUTO_APPROVABLE

    async def run_auto_approval_sweep(self) -> SweepResult:
        processed: list[str] = []
        skipped: list[str] = []
        for request in await self._store.list_requests(status=RequestStatus.PENDING):
            if not self.should_auto_approve(
                request.start, request.end, request.category, request.number_of_days
            ):
                continue
            try:
                await self._approve(
                    request, processed_by=request.worker_id, comments=AUTO_APPROVAL_COMMENT
                )
            except (ConflictError, NotFoundError) as exc:
                logger.warning("Auto-approval skipped for %s: %s", request.id, exc)
                skipped.append(request.id)
                continue
            processed.append(request.id)
        logger.info(
            "Auto-approval sweep: approved=%d skipped=%d", len(processed), len(skipped)
        )
        return SweepResult(processed=tuple(processed), skipped=tuple(skipped))

    async def run_reminder_sweep(self) -> SweepResult:
        """Queue one reminder per stale pending request.

        ``last_reminder_sent`` / ``reminder_count`` change only once the
        reminder is actually delivered.  A reminder that is dropped, or cleared
        from the queue, leaves the request eligible for the next sweep.
        """
        now = self._clock()
        interval = timedelta(days=REMINDER_INTERVAL_DAYS)
        processed: list[str] = []
        skipped: list[str] = []

        for request in await self._store.list_requests(status=RequestStatus.PENDING):
            if now - request.created_at < interval:
                continue
            if request.last_reminder_sent is not None and now - request.last_reminder_sent < interval:
                continue
            queued_job = self._reminder_jobs.get(request.id)
            if queued_job is not None and self._dispatcher.is_live(queued_job):
                skipped.append(request.id)
                continue
            worker = await self._store.get_worker(request.worker_id)
            if worker is None or not request.approver_email:
                logger.warning("Reminder skipped for %s: no worker or approver", request.id)
                skipped.append(request.id)
                continue

            job_id = self._notify(
                NotificationKind.REMINDER,
                ReminderPayload(
                    approver_email=request.approver_email,
                    approver_name=request.approver_name or "",
                    worker_name=worker.name,
                    start=request.start,
                    end=request.end,
                    days_pending=(now - request.created_at).days,
                ),
                on_delivered=functools.partial(self._reminder_delivered, request.id),
                on_dropped=functools.partial(self._reminder_dropped, request.id),
            )
            if job_id is None:
                skipped.append(request.id)
                continue
            self._reminder_jobs[request.id] = job_id
            processed.append(request.id)

        logger.info("Reminder sweep: queued=%d skipped=%d", len(processed), len(skipped))
        return SweepResult(processed=tuple(processed), skipped=tuple(skipped))

    async def _reminder_delivered(self, request_id: str) -> None:
        try:
            await self._store.record_reminder(request_id, self._clock())
        finally:
            self._reminder_jobs.pop(request_id, None)

    async def _reminder_dropped(self, request_id: str) -> None:
        self._reminder_jobs.pop(request_id, None)

    # -- helpers ------------------------------------------------------------

    def _today(self) -> date:
        return self._clock().date()

    def _notify(
        self,
        kind: NotificationKind,
        payload: NotificationPayload,
        *,
        on_delivered: JobCallback | None = None,
        on_dropped: JobCallback | None = None,
    ) -> str | None:
        """Queue a notification; failures are logged, never raised."""
        try:
            return self._dispatcher.enqueue(
                kind, payload, on_delivered=on_delivered, on_dropped=on_dropped
            )
        except Exception:
            logger.exception("Failed to queue %s notification", kind)
            return None

    async def _require_worker(self, worker_id: str) -> Worker:
        worker = await self._store.get_worker(worker_id)
        if worker is None:
            raise NotFoundError(f"Worker {worker_id!r} not found")
        return worker

    async def _require_request(self, request_id: str) -> LeaveRequest:
        request = await self._store.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Leave request {request_id!r} not found")
        return request
