"""Concurrent awaiting helpers."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine


async def gather_or_cancel(*coroutines: Coroutine[Any, Any, Any]) -> list[Any]:
    """Run ``coroutines`` in one task group and return their results in order.

    The first failure cancels the remaining calls and is re-raised unwrapped,
    so callers keep catching ``GatewayUnavailable`` and friends directly.
    """

    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coroutine) for coroutine in coroutines]
    except ExceptionGroup as failures:
        raise failures.exceptions[0]
    return [task.result() for task in tasks]
