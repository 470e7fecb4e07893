"""Event log for lifecycle transitions."""

from __future__ import annotations

import abc
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Event(BaseModel):
    external_identifier: str
    event_type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EventLog(metaclass=abc.ABCMeta):
    """Destination for lifecycle events."""

    @abc.abstractmethod
    async def record(
        self, external_identifier: str, event_type: str, data: Optional[Dict[str, Any]] = None
    ) -> None:
        raise NotImplementedError


class InMemoryEventLog(EventLog):
    def __init__(self) -> None:
        self.events: list[Event] = []

    async def record(
        self, external_identifier: str, event_type: str, data: Optional[Dict[str, Any]] = None
    ) -> None:
        self.events.append(
            Event(external_identifier=external_identifier, event_type=event_type, data=data or {})
        )

    def for_object(self, external_identifier: str) -> list[Event]:
        return [e for e in self.events if e.external_identifier == external_identifier]


class LoggingEventLog(EventLog):
    """Write events to a logger as JSON lines."""

    def __init__(self, name: str = "objversion.events") -> None:
        self._logger = logging.getLogger(name)

    async def record(
        self, external_identifier: str, event_type: str, data: Optional[Dict[str, Any]] = None
    ) -> None:
        event = Event(external_identifier=external_identifier, event_type=event_type, data=data or {})
        self._logger.info(event.model_dump_json())


class BestEffortEventLog(EventLog):
    """Wrap another log so its failures never reach the caller.

    Lifecycle transitions are already committed when their event is written;
    a failed write is logged and dropped.
    """

    def __init__(self, inner: EventLog) -> None:
        self.inner = inner

    async def record(
        self, external_identifier: str, event_type: str, data: Optional[Dict[str, Any]] = None
    ) -> None:
        try:
            await self.inner.record(external_identifier, event_type, data)
        except Exception as e:
            logger.error(
                f"Failed to record {event_type} event for {external_identifier}: {e}"
            )


_event_log_instance: EventLog | None = None


def get_event_log() -> EventLog:
    global _event_log_instance
    if _event_log_instance is None:
        _event_log_instance = BestEffortEventLog(LoggingEventLog())
    return _event_log_instance
