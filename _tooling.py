"""Shared error-handling and argument helpers for MCP tools."""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any, ParamSpec, TypeVar

from fastmcp.exceptions import ToolError

from leaves.errors import LeaveError, TransientInfrastructureError

logger = logging.getLogger("leave_mcp.server")

__all__ = ["parse_date", "success", "tool_error_handler"]

P = ParamSpec("P")
R = TypeVar("R")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def success(data: Any) -> dict[str, Any]:
    return {"status": "success", "data": data}


def parse_date(value: str, name: str = "date") -> date:
    """Parse a strict ``YYYY-MM-DD`` string (no ISO week dates, no times)."""
    if not _DATE_RE.match(value):
        raise ToolError(f"{name} must be in YYYY-MM-DD format, got: {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ToolError(f"{name} is not a valid calendar date: {value!r}") from exc


def tool_error_handler(
    error_message: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator that wraps MCP tool functions with standard error handling.

    Domain errors, PermissionError and ValueError become ToolError with their
    own message.  Infrastructure failures and anything unexpected become
    ToolError with *error_message* so internals never reach the client.
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await fn(*args, **kwargs)
            except ToolError:
                raise
            except TransientInfrastructureError as exc:
                logger.warning("%s failed: %s", fn.__name__, exc)
                raise ToolError(error_message) from None
            except (LeaveError, PermissionError, ValueError) as exc:
                raise ToolError(str(exc)) from exc
            except Exception:
                logger.exception("%s failed", fn.__name__)
                raise ToolError(error_message) from None

        return wrapper

    return decorator
