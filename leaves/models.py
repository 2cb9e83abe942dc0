"""Domain types for workers, balances, leave requests and notifications."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from _constants import DEFAULT_CASUAL_DAYS, DEFAULT_PRIVILEGE_DAYS, DEFAULT_SICK_DAYS

__all__ = [
    "ApproverChangedPayload",
    "BalanceRecord",
    "Decision",
    "LeaveCategory",
    "LeaveRequest",
    "NotificationKind",
    "NotificationPayload",
    "PAYLOAD_TYPES",
    "PasswordResetPayload",
    "ReminderPayload",
    "RequestCreatedPayload",
    "RequestStatus",
    "Role",
    "SweepResult",
    "Worker",
]


class Role(StrEnum):
    WORKER = "worker"
    APPROVER = "approver"
    ADMINISTRATOR = "administrator"


class LeaveCategory(StrEnum):
    CASUAL = "casual"
    SICK = "sick"
    PRIVILEGE = "privilege"


class RequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(slots=True)
class Worker:
    id: str
    name: str
    email: str
    jurisdiction: str
    department: str = ""
    approver_id: str | None = None
    role: Role = Role.WORKER

    @property
    def can_approve(self) -> bool:
        return self.role in (Role.APPROVER, Role.ADMINISTRATOR)


@dataclass(slots=True)
class BalanceRecord:
    """Remaining days per category for one worker. Counters never go negative."""

    worker_id: str
    casual: float = DEFAULT_CASUAL_DAYS
    sick: float = DEFAULT_SICK_DAYS
    privilege: float = DEFAULT_PRIVILEGE_DAYS

    def available(self, category: LeaveCategory) -> float:
        return getattr(self, category.value)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class LeaveRequest:
    id: str
    worker_id: str
    category: LeaveCategory
    start: date
    end: date
    justification: str
    number_of_days: float
    created_at: datetime
    half_day: bool = False
    has_supporting_document: bool = False
    status: RequestStatus = RequestStatus.PENDING
    # Cached approver display fields; rewritten on reassignment.
    approver_id: str | None = None
    approver_name: str | None = None
    approver_email: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    comments: str | None = None
    last_reminder_sent: datetime | None = None
    reminder_count: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status is RequestStatus.PENDING

    def overlaps(self, start: date, end: date) -> bool:
        """Inclusive range intersection with ``[start, end]``."""
        return self.start <= end and self.end >= start

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("start", "end", "created_at", "processed_at", "last_reminder_sent"):
            value = data[key]
            data[key] = value.isoformat() if value is not None else None
        data["category"] = self.category.value
        data["status"] = self.status.value
        return data


@dataclass(frozen=True, slots=True)
class SweepResult:
    """Outcome of a scheduled sweep: ids acted upon and ids passed over."""

    processed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"processed": list(self.processed), "skipped": list(self.skipped)}


# ---------------------------------------------------------------------------
# Notification payloads (tagged union keyed by NotificationKind)
# ---------------------------------------------------------------------------


class NotificationKind(StrEnum):
    REQUEST_CREATED = "request-created"
    REMINDER = "reminder"
    PASSWORD_RESET = "password-reset"
    APPROVER_CHANGED = "approver-changed"


@dataclass(frozen=True, slots=True)
class RequestCreatedPayload:
    approver_email: str
    approver_name: str
    worker_name: str
    start: date
    end: date
    category: LeaveCategory


@dataclass(frozen=True, slots=True)
class ReminderPayload:
    approver_email: str
    approver_name: str
    worker_name: str
    start: date
    end: date
    days_pending: int


@dataclass(frozen=True, slots=True)
class PasswordResetPayload:
    user_email: str
    user_name: str
    reset_token: str


@dataclass(frozen=True, slots=True)
class ApproverChangedPayload:
    worker_email: str
    worker_name: str
    approver_name: str
    approver_department: str
    reassigned_requests: int = 0


NotificationPayload = (
    RequestCreatedPayload | ReminderPayload | PasswordResetPayload | ApproverChangedPayload
)

PAYLOAD_TYPES: dict[NotificationKind, type] = {
    NotificationKind.REQUEST_CREATED: RequestCreatedPayload,
    NotificationKind.REMINDER: ReminderPayload,
    NotificationKind.PASSWORD_RESET: PasswordResetPayload,
    NotificationKind.APPROVER_CHANGED: ApproverChangedPayload,
}
