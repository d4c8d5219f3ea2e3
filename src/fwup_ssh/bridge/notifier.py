"""Completion actions run after a successful firmware update."""

from __future__ import annotations

import asyncio
import inspect
import logging
import shlex
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# Strong references so detached callbacks are not garbage collected mid-flight.
_background_tasks: set[asyncio.Task[None]] = set()


def dispatch_success_callback(status: int, callback: Callable[[], Any] | None) -> asyncio.Task[None] | None:
    """Schedule ``callback`` when fwup exited with status 0.

    The callback runs detached from the session; its result and any error are
    only logged.

    Returns:
        The scheduled task, or None when nothing was scheduled.
    """
    if status != 0 or callback is None:
        return None

    task = asyncio.get_running_loop().create_task(_run_callback(callback))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def _run_callback(callback: Callable[[], Any]) -> None:
    try:
        if inspect.iscoroutinefunction(callback):
            await callback()
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, callback)
            if inspect.isawaitable(result):
                await result
    except Exception as exc:
        logger.exception("success callback %r failed: %s", callback, exc)
    else:
        logger.info("success callback %r finished", callback)


async def reboot_host(command: str = "reboot") -> None:
    """Run the host reboot command.

    Args:
        command: Shell-quoted reboot command line.
    """
    args = shlex.split(command)
    logger.warning("firmware applied, rebooting: %s", " ".join(args))
    try:
        proc = await asyncio.create_subprocess_exec(*args)
    except FileNotFoundError:
        logger.error("reboot command not found: %s", args[0])
        return
    rc = await proc.wait()
    if rc != 0:
        logger.error("reboot command exited with status %d", rc)
