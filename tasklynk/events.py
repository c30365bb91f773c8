"""Event emission for the TaskLynk core.

The core never delivers notifications itself. It emits events to a
``Notifier`` collaborator (ledger, email, chat fan-out) and moves on:
emission is fire-and-forget and a failing notifier never fails the caller.
Downstream consumers must tolerate duplicates.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Events emitted by the order and payment subsystems."""

    ORDER_CREATED = "order.created"
    ORDER_EDITED = "order.edited"
    ORDER_TRANSITIONED = "order.transitioned"
    ARTIFACT_RECORDED = "order.artifact_recorded"
    PAYMENT_INITIATED = "payment.initiated"
    PAYMENT_CONFIRMED = "payment.confirmed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_DUPLICATE = "payment.duplicate"
    PAYMENT_LATE_SUCCESS = "payment.late_success"


@dataclass
class Event:
    """An emitted event."""

    type: EventType
    payload: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier(Protocol):
    """Collaborator that receives emitted events."""

    def emit(self, event_type: EventType, payload: Dict[str, Any]) -> None:
        """Accept an event. Must not block on delivery."""
        ...


class LoggingNotifier:
    """Default notifier: writes events to the log."""

    def emit(self, event_type: EventType, payload: Dict[str, Any]) -> None:
        logger.info(f"Event | type={event_type.value} | payload={payload}")


class InMemoryNotifier:
    """Notifier that records events, for testing and local development."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[Event] = []

    def emit(self, event_type: EventType, payload: Dict[str, Any]) -> None:
        with self._lock:
            self.events.append(Event(type=event_type, payload=dict(payload)))

    def of_type(self, event_type: EventType) -> List[Event]:
        with self._lock:
            return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


def emit_safely(notifier: Notifier, event_type: EventType, payload: Dict[str, Any]) -> None:
    """Emit an event, logging (never raising) notifier failures."""
    try:
        notifier.emit(event_type, payload)
    except Exception as e:
        # Delivery is best-effort; the state change already committed.
        logger.warning(f"Notifier failed | type={event_type.value} | error={e}")
