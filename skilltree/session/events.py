"""
Fire-and-forget session events.

Consumers (gamification, analytics) subscribe by event name. Emitting never blocks the
session: sync handlers run inline, coroutine handlers are scheduled as tasks, and a
failing handler is logged rather than allowed to break the session.
"""
from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger


class SessionEvent(str, Enum):
    """Events emitted by the test session."""

    UNIT_APPROVED = "unit-approved"
    FINAL_TEST_PASSED = "final-test-passed"
    HEARTS_DEPLETED = "hearts-depleted"
    STREAK_REACHED = "streak-reached"
    COURSE_TOKEN_GRANTED = "course-token-granted"


@dataclass(frozen=True)
class Event:
    name: SessionEvent
    payload: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Event], Any]


class EventBus:
    """Minimal pub/sub for session events."""

    def __init__(self):
        self._handlers: dict[SessionEvent, list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, name: SessionEvent, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that unsubscribes it."""
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[name]:
                self._handlers[name].remove(handler)

        return unsubscribe

    def emit(self, name: SessionEvent, **payload: Any) -> Event:
        event = Event(name=name, payload=payload)
        logger.debug("Event {} {}", name.value, payload)
        for handler in list(self._handlers.get(name, ())):
            try:
                result = handler(event)
            except Exception:
                logger.exception("Handler for {} failed", name.value)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)
        return event

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Async event handler failed")

    async def drain(self) -> None:
        """Wait for scheduled async handlers; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
