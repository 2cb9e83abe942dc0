"""Tests for clients/sendgrid.py -- email rendering and delivery."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from datetime import date

import httpx
import pytest
import pytest_asyncio
import respx

from clients._base import BaseHTTPClient
from clients.sendgrid import SendGridNotifier, render_email
from leaves.models import (
    ApproverChangedPayload,
    LeaveCategory,
    NotificationKind,
    PasswordResetPayload,
    ReminderPayload,
    RequestCreatedPayload,
)

SENDGRID_URL = "https://sendgrid.example.com"
SEND_URL = f"{SENDGRID_URL}/v3/mail/send"

CREATED = RequestCreatedPayload(
    approver_email="alice@example.com",
    approver_name="Alice",
    worker_name="Bob <script>",
    start=date(2025, 1, 13),
    end=date(2025, 1, 15),
    category=LeaveCategory.CASUAL,
)


@pytest_asyncio.fixture
async def sendgrid_http() -> AsyncGenerator[BaseHTTPClient, None]:
    base = BaseHTTPClient(SENDGRID_URL, auth_header="Bearer SG.test", service_name="SendGrid")
    yield base
    await base.close()


@pytest.fixture
def notifier(sendgrid_http: BaseHTTPClient) -> SendGridNotifier:
    return SendGridNotifier(sendgrid_http, "noreply@example.com", app_url="https://leave.example.com/")


class TestRenderEmail:
    def test_request_created(self) -> None:
        message = render_email(CREATED)
        assert message.to == "alice@example.com"
        assert message.subject == "Leave Request from Bob <script>"
        assert "Hello Alice" in message.html
        assert "casual" in message.html
        assert "2025-01-13" in message.html and "2025-01-15" in message.html

    def test_values_are_escaped_in_html(self) -> None:
        message = render_email(CREATED)
        assert "<script>" not in message.html
        assert "Bob &lt;script&gt;" in message.html

    def test_reminder(self) -> None:
        message = render_email(
            ReminderPayload(
                approver_email="alice@example.com",
                approver_name="Alice",
                worker_name="Bob",
                start=date(2025, 1, 13),
                end=date(2025, 1, 13),
                days_pending=4,
            )
        )
        assert message.subject == "REMINDER: Pending Leave Request from Bob (4 days pending)"
        assert "4 days" in message.html

    def test_password_reset_link(self) -> None:
        message = render_email(
            PasswordResetPayload(user_email="bob@example.com", user_name="Bob", reset_token="t0k"),
            app_url="https://leave.example.com/",
        )
        assert message.to == "bob@example.com"
        assert message.subject == "Password Reset Request - Leave Management"
        assert "https://leave.example.com/reset-password?token=t0k" in message.html

    def test_approver_changed(self) -> None:
        message = render_email(
            ApproverChangedPayload(
                worker_email="bob@example.com",
                worker_name="Bob",
                approver_name="Nina",
                approver_department="Ops & Finance",
                reassigned_requests=2,
            )
        )
        assert message.to == "bob@example.com"
        assert message.subject == "Manager Assignment Update - Leave Management"
        assert "Ops &amp; Finance" in message.html
        assert "2 pending leave request(s)" in message.html

    def test_unknown_payload_rejected(self) -> None:
        with pytest.raises(TypeError, match="Unsupported"):
            render_email(object())  # type: ignore[arg-type]


class TestSendGridNotifier:
    def test_sender_must_be_an_address(self, sendgrid_http: BaseHTTPClient) -> None:
        with pytest.raises(ValueError, match="sender"):
            SendGridNotifier(sendgrid_http, "noreply")

    @respx.mock
    async def test_posts_mail_send_body(self, notifier: SendGridNotifier) -> None:
        route = respx.post(SEND_URL).mock(return_value=httpx.Response(202))

        assert await notifier.send(NotificationKind.REQUEST_CREATED, CREATED) is True

        request = route.calls.last.request
        assert request.headers["authorization"] == "Bearer SG.test"
        body = json.loads(request.content)
        assert body["personalizations"] == [{"to": [{"email": "alice@example.com"}]}]
        assert body["from"] == {"email": "noreply@example.com"}
        assert body["subject"] == "Leave Request from Bob <script>"
        assert body["content"][0]["type"] == "text/html"

    @respx.mock
    async def test_rejection_returns_false(
        self, notifier: SendGridNotifier, caplog: pytest.LogCaptureFixture
    ) -> None:
        respx.post(SEND_URL).mock(
            return_value=httpx.Response(401, json={"errors": [{"message": "bad key"}]})
        )
        assert await notifier.send(NotificationKind.REQUEST_CREATED, CREATED) is False
        assert any("bad key" in r.message for r in caplog.records)

    @respx.mock
    async def test_transport_error_returns_false(self, notifier: SendGridNotifier) -> None:
        respx.post(SEND_URL).mock(side_effect=httpx.ConnectError("refused"))
        assert await notifier.send(NotificationKind.REQUEST_CREATED, CREATED) is False

    async def test_unconfigured_returns_false(self) -> None:
        notifier = SendGridNotifier(None, "noreply@example.com")
        assert await notifier.send(NotificationKind.REQUEST_CREATED, CREATED) is False
