"""Approvals MCP tools: approver and administrator operations."""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from _constants import MAX_COMMENTS_LEN
from _tooling import success, tool_error_handler
from leaves import get_registry
from leaves.models import Decision, Role

logger = logging.getLogger("leave_mcp.server")

__all__ = ["register"]

_VALID_DECISIONS = sorted(d.value for d in Decision)
_VALID_ROLES = sorted(r.value for r in Role)


def register(mcp: FastMCP) -> None:
    """Register all approvals tools on the given FastMCP instance."""

    # ------------------------------------------------------------------
    # Read tools
    # ------------------------------------------------------------------

    @mcp.tool
    @tool_error_handler("Failed to fetch pending requests. Please try again.")
    async def approvals_list_pending(approver_id: str) -> dict[str, Any]:
        """List pending leave requests waiting on an approver.

        Args:
            approver_id: Approver identifier.
        """
        requests = await get_registry().engine.list_pending_for_approver(approver_id)
        return success([r.to_dict() for r in requests])

    # ------------------------------------------------------------------
    # Write tools
    # ------------------------------------------------------------------

    @mcp.tool
    @tool_error_handler("Failed to process leave request. Please try again.")
    async def approvals_process_request(
        approver_id: str,
        request_id: str,
        decision: str,
        comments: str | None = None,
    ) -> dict[str, Any]:
        """Approve or reject a pending leave request of one of your team members.

        Args:
            approver_id: Approver making the decision.
            request_id: ID of the pending request.
            decision: 'approved' or 'rejected'.
            comments: Optional note stored on the request.
        """
        if decision not in _VALID_DECISIONS:
            raise ToolError(f"decision must be one of {_VALID_DECISIONS}, got: {decision!r}")
        if comments is not None and len(comments) > MAX_COMMENTS_LEN:
            raise ToolError(f"Comments too long (max {MAX_COMMENTS_LEN} characters)")

        processed = await get_registry().engine.process_request(
            request_id, approver_id, Decision(decision), comments
        )
        logger.info(
            "WRITE_OP tool=approvals_process_request approver=%s request_id=%s decision=%s",
            approver_id,
            request_id,
            decision,
        )
        return success(processed.to_dict())

    @mcp.tool
    @tool_error_handler("Failed to reassign approver. Please try again.")
    async def approvals_reassign(worker_id: str, new_approver_id: str) -> dict[str, Any]:
        """Assign a worker to a new approver; their pending requests move too.

        Args:
            worker_id: Worker being reassigned.
            new_approver_id: Worker with the approver or administrator role.
        """
        moved = await get_registry().engine.reassign_approver(worker_id, new_approver_id)
        logger.info(
            "WRITE_OP tool=approvals_reassign worker=%s approver=%s moved=%d",
            worker_id,
            new_approver_id,
            moved,
        )
        return success({"worker_id": worker_id, "reassigned_requests": moved})

    @mcp.tool
    @tool_error_handler("Failed to register worker. Please try again.")
    async def approvals_register_worker(
        name: str,
        email: str,
        jurisdiction: str,
        department: str = "",
        role: str = "worker",
        approver_id: str | None = None,
    ) -> dict[str, Any]:
        """Register a worker and give them the default leave allocation.

        Args:
            name: Full name.
            email: Address notifications are sent to.
            jurisdiction: Country code used for holiday lookup.
            department: Department name.
            role: 'worker', 'approver' or 'administrator'.
            approver_id: Approver who will handle their requests.
        """
        if role not in _VALID_ROLES:
            raise ToolError(f"role must be one of {_VALID_ROLES}, got: {role!r}")
        if "@" not in email:
            raise ToolError("email must be an email address")

        worker = await get_registry().engine.register_worker(
            name,
            email,
            jurisdiction,
            department=department,
            role=Role(role),
            approver_id=approver_id,
        )
        logger.info(
            "WRITE_OP tool=approvals_register_worker worker=%s role=%s", worker.id, worker.role
        )
        return success({"id": worker.id, "role": worker.role.value})
