"""
Executor notifications.

Subscribers hear about every command the executor finished and about
audit writes that failed after the command itself went through.
Delivery is synchronous and in subscription order.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

EventType = Literal["command_executed", "audit_write_failed"]


class ExecutorEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: EventType
    command_type: str
    success: bool
    message: str = ""
    audit_log_id: Optional[str] = None
    error: Optional[str] = None


Subscriber = Callable[[ExecutorEvent], None]


class EventBus:
    """Fans executor events out to subscribers, optionally filtered by event type."""

    def __init__(self):
        self._subscribers: List[Tuple[Optional[EventType], Subscriber]] = []

    def subscribe(self, callback: Subscriber, event_type: Optional[EventType] = None) -> None:
        self._subscribers.append((event_type, callback))

    def command_executed(
        self,
        command_type: str,
        success: bool,
        message: str,
        audit_log_id: Optional[str] = None,
    ) -> ExecutorEvent:
        return self._publish(ExecutorEvent(
            event_type="command_executed",
            command_type=command_type,
            success=success,
            message=message,
            audit_log_id=audit_log_id,
        ))

    def audit_write_failed(self, command_type: str, success: bool, audit_log_id: str, error: str) -> ExecutorEvent:
        return self._publish(ExecutorEvent(
            event_type="audit_write_failed",
            command_type=command_type,
            success=success,
            audit_log_id=audit_log_id,
            error=error,
        ))

    def _publish(self, event: ExecutorEvent) -> ExecutorEvent:
        for wanted, subscriber in self._subscribers:
            if wanted is not None and wanted != event.event_type:
                continue
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"[BUS] Subscriber failed on {event.event_type} ({event.command_type}): {e}")
        return event
