"""Ops MCP tools: scheduled sweeps and notification queue control.

Sensitive domain: only loaded with ENABLE_SENSITIVE_DOMAINS=true.
"""

from __future__ import annotations

import logging
from typing import Any

from fastmcp import FastMCP

from _tooling import success, tool_error_handler
from leaves import get_registry

logger = logging.getLogger("leave_mcp.server")

__all__ = ["register"]


def register(mcp: FastMCP) -> None:
    """Register all ops tools on the given FastMCP instance."""

    @mcp.tool
    @tool_error_handler("Failed to read notification queue status.")
    async def ops_queue_status() -> dict[str, Any]:
        """Report queued, in-flight and total notification jobs."""
        return success(get_registry().dispatcher.status())

    @mcp.tool
    @tool_error_handler("Auto-approval sweep failed.")
    async def ops_run_auto_approval_sweep() -> dict[str, Any]:
        """Approve pending past-dated casual/privilege requests (never sick leave)."""
        result = await get_registry().engine.run_auto_approval_sweep()
        logger.info(
            "WRITE_OP tool=ops_run_auto_approval_sweep approved=%d", len(result.processed)
        )
        return success(result.to_dict())

    @mcp.tool
    @tool_error_handler("Reminder sweep failed.")
    async def ops_run_reminder_sweep() -> dict[str, Any]:
        """Queue reminders for requests pending more than 3 days."""
        result = await get_registry().engine.run_reminder_sweep()
        logger.info("WRITE_OP tool=ops_run_reminder_sweep queued=%d", len(result.processed))
        return success(result.to_dict())

    @mcp.tool
    @tool_error_handler("Failed to clear notification queue.")
    async def ops_clear_queue() -> dict[str, Any]:
        """Drop every queued notification and cancel in-flight sends."""
        dispatcher = get_registry().dispatcher
        dropped = dispatcher.status()["total"]
        dispatcher.clear()
        logger.info("WRITE_OP tool=ops_clear_queue dropped=%d", dropped)
        return success({"dropped": dropped})
