"""Leave MCP Server -- FastMCP v3 front end for the leave lifecycle engine.

Exposes leave-request, approval and ops tools via the Model Context Protocol,
plus two plain HTTP routes: ``/health`` and the ``/cron/leave-reminders``
endpoint a scheduler calls to run the auto-approval and reminder sweeps.
Authentication is handled in front of this server; tools take explicit
worker / approver ids and the engine re-checks who manages whom.
"""

from __future__ import annotations

import hmac
import importlib.metadata
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from _constants import NOTIFICATION_TIMEOUT
from clients import SENDGRID_BASE_URL, BaseHTTPClient, HolidaysClient, SendGridNotifier
from leaves import LeaveServiceRegistry, get_registry, set_registry
from leaves.calendar import HolidayProvider, StaticHolidayProvider
from leaves.store import InMemoryLeaveStore
from tools import load_domains

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("leave_mcp.server")

# Configure logging; LOG_LEVEL env var overrides the default INFO level.
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

HOLIDAY_API_BASE_URL: str = os.environ.get("HOLIDAY_API_BASE_URL", "").strip()
SENDGRID_API_KEY: str = os.environ.get("SENDGRID_API_KEY", "").strip()
SENDGRID_URL: str = os.environ.get("SENDGRID_BASE_URL", SENDGRID_BASE_URL)
NOTIFY_FROM_EMAIL: str = os.environ.get("NOTIFY_FROM_EMAIL", "noreply@example.com")
APP_URL: str = os.environ.get("APP_URL", "http://localhost:3000")
CRON_SECRET: str = os.environ.get("CRON_SECRET", "")

try:
    _APP_VERSION: str = importlib.metadata.version("leave-mcp")
except importlib.metadata.PackageNotFoundError:
    _APP_VERSION = os.environ.get("APP_VERSION", "dev")


def build_registry() -> LeaveServiceRegistry:
    """Assemble the production registry from environment configuration."""
    closers = []

    holidays: HolidayProvider
    if HOLIDAY_API_BASE_URL:
        holiday_http = BaseHTTPClient(HOLIDAY_API_BASE_URL, service_name="Holiday API")
        holidays = HolidaysClient(holiday_http)
        closers.append(holiday_http.close)
    else:
        logger.warning("HOLIDAY_API_BASE_URL is not set; only weekends are non-business days")
        holidays = StaticHolidayProvider()

    sendgrid_http: BaseHTTPClient | None = None
    if SENDGRID_API_KEY:
        sendgrid_http = BaseHTTPClient(
            SENDGRID_URL,
            auth_header=f"Bearer {SENDGRID_API_KEY}",
            timeout=NOTIFICATION_TIMEOUT,
            service_name="SendGrid",
        )
        closers.append(sendgrid_http.close)
    else:
        logger.warning("SENDGRID_API_KEY is not set; notifications will fail and be dropped")
    notifier = SendGridNotifier(sendgrid_http, NOTIFY_FROM_EMAIL, app_url=APP_URL)

    return LeaveServiceRegistry(
        store=InMemoryLeaveStore(),
        holidays=holidays,
        notifier=notifier,
        closers=closers,
    )


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Manage application resources during server lifecycle."""
    registry = build_registry()
    set_registry(registry)
    logger.info("Leave MCP server %s starting up", _APP_VERSION)
    try:
        yield
    finally:
        logger.info("Leave MCP server shutting down")
        await registry.close()
        set_registry(None)


mcp = FastMCP(name="leave-mcp", lifespan=_lifespan)


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject hardening headers into every HTTP response."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


_security_middleware = Middleware(SecurityHeadersMiddleware)


# ---------------------------------------------------------------------------
# Plain HTTP routes
# ---------------------------------------------------------------------------


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:
    """Return 200 OK for Docker health checks and load balancers."""
    return JSONResponse({"status": "ok", "version": _APP_VERSION})


def _cron_authorized(request: Request) -> bool:
    if not CRON_SECRET:
        return True
    supplied = request.headers.get("authorization", "")
    return hmac.compare_digest(supplied, f"Bearer {CRON_SECRET}")


@mcp.custom_route("/cron/leave-reminders", methods=["POST"])
async def leave_reminder_cron(request: Request) -> JSONResponse:
    """Run the auto-approval sweep, then the reminder sweep."""
    if not _cron_authorized(request):
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    engine = get_registry().engine
    try:
        approved = await engine.run_auto_approval_sweep()
        reminders = await engine.run_reminder_sweep()
    except Exception:
        logger.exception("Leave reminder cron job failed")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    return JSONResponse(
        {
            "status": "ok",
            "auto_approval": approved.to_dict(),
            "reminders": reminders.to_dict(),
        }
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

LOADED_DOMAINS: list[str] = load_domains(mcp)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run(
        transport="http",
        host=os.environ.get("MCP_HOST", "127.0.0.1"),
        port=int(os.environ.get("MCP_PORT", "8100")),
        stateless_http=True,
        middleware=[_security_middleware],
    )
