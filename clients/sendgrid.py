"""SendGrid notifier: renders one email per notification kind and posts it.

Implements the dispatcher's ``Notifier`` protocol.  ``send`` returns ``False``
for any delivery problem (missing API key, HTTP error, transport failure) and
leaves retrying to the dispatcher.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from html import escape
from typing import Any

from clients._base import BaseHTTPClient
from leaves.models import (
    ApproverChangedPayload,
    NotificationKind,
    NotificationPayload,
    PasswordResetPayload,
    ReminderPayload,
    RequestCreatedPayload,
)

__all__ = ["EmailMessage", "SendGridNotifier", "render_email"]

logger = logging.getLogger("leave_mcp.client")

SENDGRID_BASE_URL = "https://api.sendgrid.com"
_SIGNATURE = "<p>Best regards,<br>Leave Management System</p>"


@dataclass(frozen=True, slots=True)
class EmailMessage:
    to: str
    subject: str
    html: str


def _wrap(heading: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>{escape(heading)}</h2>{body}{_SIGNATURE}</div>"
    )


def render_email(payload: NotificationPayload, app_url: str = "") -> EmailMessage:
    """Build the email for *payload*.  Every interpolated value is HTML-escaped."""
    match payload:
        case RequestCreatedPayload():
            return EmailMessage(
                to=payload.approver_email,
                subject=f"Leave Request from {payload.worker_name}",
                html=_wrap(
                    "Leave Request Notification",
                    f"<p>Hello {escape(payload.approver_name)},</p>"
                    f"<p>You have received a leave request from "
                    f"<strong>{escape(payload.worker_name)}</strong>:</p>"
                    f"<p><strong>Leave Type:</strong> {escape(str(payload.category))}</p>"
                    f"<p><strong>Start Date:</strong> {payload.start.isoformat()}</p>"
                    f"<p><strong>End Date:</strong> {payload.end.isoformat()}</p>"
                    "<p>Please review and approve or reject this request.</p>",
                ),
            )
        case ReminderPayload():
            return EmailMessage(
                to=payload.approver_email,
                subject=(
                    f"REMINDER: Pending Leave Request from {payload.worker_name} "
                    f"({payload.days_pending} days pending)"
                ),
                html=_wrap(
                    "Leave Request Reminder",
                    f"<p>Hello {escape(payload.approver_name)},</p>"
                    "<p><strong>This is a reminder</strong> that a leave request is "
                    "waiting for your decision:</p>"
                    f"<p><strong>Employee:</strong> {escape(payload.worker_name)}</p>"
                    f"<p><strong>Start Date:</strong> {payload.start.isoformat()}</p>"
                    f"<p><strong>End Date:</strong> {payload.end.isoformat()}</p>"
                    f"<p><strong>Days Pending:</strong> {payload.days_pending} days</p>",
                ),
            )
        case PasswordResetPayload():
            link = f"{app_url.rstrip('/')}/reset-password?token={escape(payload.reset_token)}"
            return EmailMessage(
                to=payload.user_email,
                subject="Password Reset Request - Leave Management",
                html=_wrap(
                    "Password Reset Request",
                    f"<p>Hello {escape(payload.user_name)},</p>"
                    "<p>You asked to reset your password.</p>"
                    f'<p><a href="{link}">Reset Password</a></p>'
                    f"<p>{link}</p>"
                    "<p><strong>This link will expire in 1 hour.</strong></p>"
                    "<p>If you did not request this, ignore this email.</p>",
                ),
            )
        case ApproverChangedPayload():
            return EmailMessage(
                to=payload.worker_email,
                subject="Manager Assignment Update - Leave Management",
                html=_wrap(
                    "Manager Assignment Update",
                    f"<p>Hello {escape(payload.worker_name)},</p>"
                    "<p>Your manager assignment has been updated.</p>"
                    f"<p><strong>New Manager:</strong> {escape(payload.approver_name)}</p>"
                    f"<p><strong>Department:</strong> {escape(payload.approver_department)}</p>"
                    f"<p>{payload.reassigned_requests} pending leave request(s) moved to "
                    "your new manager.</p>",
                ),
            )
    raise TypeError(f"Unsupported notification payload: {type(payload).__name__}")


class SendGridNotifier:
    """Delivers notifications through SendGrid's v3 mail-send endpoint."""

    def __init__(
        self,
        base: BaseHTTPClient | None,
        sender: str,
        *,
        app_url: str = "",
    ) -> None:
        if not sender or "@" not in sender:
            raise ValueError("sender must be an email address")
        self._base = base
        self._sender = sender
        self._app_url = app_url

    async def send(self, kind: NotificationKind, payload: NotificationPayload) -> bool:
        if self._base is None:
            logger.error("SENDGRID_API_KEY is not set; cannot send %s notification", kind)
            return False

        message = render_email(payload, self._app_url)
        body: dict[str, Any] = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self._sender},
            "subject": message.subject,
            "content": [{"type": "text/html", "value": message.html}],
        }
        result = await self._base._request("POST", "v3/mail/send", data=body)
        if result["status"] != "success":
            logger.warning(
                "SendGrid rejected %s notification to %s: %s",
                kind,
                message.to,
                result.get("message"),
            )
            return False
        logger.info("SendGrid accepted %s notification to %s", kind, message.to)
        return True
