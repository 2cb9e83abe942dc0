"""Shared constants for the leave MCP server."""

from __future__ import annotations

DEFAULT_CASUAL_DAYS: float = 6
DEFAULT_SICK_DAYS: float = 6
DEFAULT_PRIVILEGE_DAYS: float = 18

MAX_JUSTIFICATION_LEN: int = 500
MAX_COMMENTS_LEN: int = 500
MAX_ADVANCE_DAYS: int = 365
SICK_DOCUMENT_THRESHOLD_DAYS: float = 2

REMINDER_INTERVAL_DAYS: int = 3
AUTO_APPROVAL_COMMENT: str = "Auto-approved: leave date has passed"

MAX_CONCURRENT_NOTIFICATIONS: int = 5
MAX_NOTIFICATION_ATTEMPTS: int = 3
NOTIFICATION_BACKOFF_BASE: float = 1.0
NOTIFICATION_TIMEOUT: float = 10.0

HOLIDAY_CACHE_TTL: float = 300.0
HOLIDAY_CACHE_SIZE: int = 256
MAX_CALENDAR_SCAN_DAYS: int = 366
