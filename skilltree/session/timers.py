"""
Cancellable overlay timers.

Overlays (streak, mistake analysis, success celebration, ad interstitial) dismiss
themselves after a delay. Each timer is keyed by name so re-scheduling replaces the
old one, and closing a session cancels everything still pending.
"""
from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from loguru import logger

Callback = Callable[[], "Awaitable[None] | None"]


class OverlayScheduler:
    """Named asyncio timers."""

    def __init__(self):
        self._timers: dict[str, asyncio.Task] = {}

    def schedule(self, name: str, delay: float, callback: Callback) -> asyncio.Task:
        """Run ``callback`` after ``delay`` seconds unless cancelled first."""
        self.cancel(name)
        task = asyncio.get_running_loop().create_task(self._run(name, delay, callback))
        self._timers[name] = task
        return task

    async def _run(self, name: str, delay: float, callback: Callback) -> None:
        await asyncio.sleep(max(0.0, delay))
        if self._timers.get(name) is asyncio.current_task():
            del self._timers[name]
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Overlay timer {} failed", name)

    def cancel(self, name: str) -> bool:
        task = self._timers.pop(name, None)
        if task is None or task.done():
            return False
        # A timer may cancel itself from inside its own callback
        if task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for name in list(self._timers):
            if self.cancel(name):
                cancelled += 1
        return cancelled

    def is_pending(self, name: str) -> bool:
        task = self._timers.get(name)
        return task is not None and not task.done()

    @property
    def pending(self) -> list[str]:
        return [name for name, task in self._timers.items() if not task.done()]
