"""
TASKGATE Task Events

Executors report their lifecycle (task.started, task.approved, task.progress,
task.completed, task.failed) on a synchronous bus. The CLI subscribes a
renderer for the duration of one run. Delivery happens on the emitting
thread in subscription order; a subscriber that raises is logged and skipped.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel, Field

Subscriber = Callable[["TaskEvent"], None]


class TaskEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    task_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class EventBus:
    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        """Remove a callback. Unknown callbacks are ignored."""
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: str, task_id: str, payload: dict[str, Any] | None = None) -> TaskEvent:
        event = TaskEvent(event_type=event_type, task_id=task_id, payload=payload or {})

        # Snapshot: a subscriber may unsubscribe itself while handling the event
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"[EVENTS] {task_id}: subscriber failed on {event_type}: {e}")

        return event


# Shared by the executors and the CLI renderer
bus = EventBus()
