"""Outbound HTTP clients: holiday calendar and SendGrid email delivery."""

from __future__ import annotations

from clients._base import BaseHTTPClient, TTLCache
from clients.holidays import HolidaysClient
from clients.sendgrid import SENDGRID_BASE_URL, SendGridNotifier

__all__ = [
    "BaseHTTPClient",
    "HolidaysClient",
    "SENDGRID_BASE_URL",
    "SendGridNotifier",
    "TTLCache",
]
