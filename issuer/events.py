"""
Event sinks: the side channel through which setup reports what happened.

Events are fire-and-forget.  The reconciler receives a sink at construction
time, so tests can swap in a RecordingEventSink.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol

import structlog

from issuer.models import Issuer

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"


class EventSink(Protocol):
    def emit(self, issuer: Issuer, event_type: str, reason: str, message: str) -> None:
        ...


class LoggingEventSink:
    """Writes each event as a structured log line."""

    def __init__(self, logger=None) -> None:
        self._log = logger or structlog.get_logger("issuer.events")

    def emit(self, issuer: Issuer, event_type: str, reason: str, message: str) -> None:
        log = self._log.bind(
            issuer=issuer.name,
            namespace=issuer.namespace,
            event_type=event_type,
            reason=reason,
        )
        if event_type == EVENT_TYPE_WARNING:
            log.warning(message)
        else:
            log.info(message)


@dataclass(frozen=True)
class Event:
    issuer: str
    namespace: str
    event_type: str
    reason: str
    message: str


class RecordingEventSink:
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: List[Event] = []

    def emit(self, issuer: Issuer, event_type: str, reason: str, message: str) -> None:
        self.events.append(Event(issuer.name, issuer.namespace, event_type, reason, message))

    def reasons(self) -> List[str]:
        return [e.reason for e in self.events]
