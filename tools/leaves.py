"""Leaves MCP tools: worker-side request operations."""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from _tooling import parse_date, success, tool_error_handler
from leaves import get_registry
from leaves.models import LeaveCategory

logger = logging.getLogger("leave_mcp.server")

__all__ = ["register"]

_VALID_CATEGORIES = sorted(c.value for c in LeaveCategory)


def register(mcp: FastMCP) -> None:
    """Register all leaves tools on the given FastMCP instance."""

    # ------------------------------------------------------------------
    # Read tools
    # ------------------------------------------------------------------

    @mcp.tool
    @tool_error_handler("Failed to fetch leave balance. Please try again.")
    async def leaves_get_balance(worker_id: str) -> dict[str, Any]:
        """Get remaining casual, sick and privilege days for a worker.

        Args:
            worker_id: Worker identifier.
        """
        balance = await get_registry().engine.get_balance(worker_id)
        return success(balance.to_dict())

    @mcp.tool
    @tool_error_handler("Failed to fetch leave requests. Please try again.")
    async def leaves_list_mine(worker_id: str) -> dict[str, Any]:
        """List a worker's leave requests, newest first (all statuses).

        Args:
            worker_id: Worker identifier.
        """
        requests = await get_registry().engine.list_requests(worker_id)
        return success([r.to_dict() for r in requests])

    @mcp.tool
    @tool_error_handler("Failed to check date. Please try again.")
    async def leaves_check_date(date_str: str, jurisdiction: str) -> dict[str, Any]:
        """Check whether a date is a business day and find the next one.

        Args:
            date_str: Date in YYYY-MM-DD format.
            jurisdiction: Country code used for holiday lookup (e.g. "PK").
        """
        day = parse_date(date_str, "date_str")
        calendar = get_registry().calendar
        is_business_day = await calendar.is_business_day(day, jurisdiction)
        next_day = await calendar.next_business_day(day, jurisdiction)
        return success(
            {
                "date": day.isoformat(),
                "is_business_day": is_business_day,
                "next_business_day": next_day.isoformat(),
            }
        )

    # ------------------------------------------------------------------
    # Write tools
    # ------------------------------------------------------------------

    @mcp.tool
    @tool_error_handler("Failed to create leave request. Please try again.")
    async def leaves_create_request(
        worker_id: str,
        category: str,
        start_date: str,
        end_date: str,
        justification: str,
        half_day: bool = False,
        document_ref: str | None = None,
    ) -> dict[str, Any]:
        """Submit a leave request for approval.

        Every rule is checked and all violations are reported together.

        Args:
            worker_id: Worker submitting the request.
            category: One of 'casual', 'sick', 'privilege'.
            start_date: First day of leave, YYYY-MM-DD.
            end_date: Last day of leave (inclusive), YYYY-MM-DD.
            justification: Reason for the leave.
            half_day: Take half a day off the total. Default is false.
            document_ref: Supporting document reference; required for sick
                leave longer than 2 days.
        """
        if category not in _VALID_CATEGORIES:
            raise ToolError(f"category must be one of {_VALID_CATEGORIES}, got: {category!r}")
        start = parse_date(start_date, "start_date")
        end = parse_date(end_date, "end_date")

        request_id = await get_registry().engine.create_request(
            worker_id,
            LeaveCategory(category),
            start,
            end,
            justification,
            half_day=half_day,
            document_ref=document_ref,
        )
        logger.info(
            "WRITE_OP tool=leaves_create_request worker=%s category=%s start=%s end=%s",
            worker_id,
            category,
            start_date,
            end_date,
        )
        return success({"id": request_id})

    @mcp.tool
    @tool_error_handler("Failed to cancel leave request. Please try again.")
    async def leaves_cancel_request(worker_id: str, request_id: str) -> dict[str, Any]:
        """Cancel one of your own pending leave requests.

        Args:
            worker_id: Worker who owns the request.
            request_id: ID of the request to cancel.
        """
        await get_registry().engine.cancel_request(request_id, worker_id=worker_id)
        logger.info(
            "WRITE_OP tool=leaves_cancel_request worker=%s request_id=%s",
            worker_id,
            request_id,
        )
        return success({"id": request_id, "cancelled": True})
