"""
Event System Module

Publish/subscribe dispatcher for ledger records. The ledger publishes only
after the outermost invocation has committed, so observers never see a
record that was later rolled back.
"""

from enum import Enum
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
import uuid
import logging
from threading import RLock

from .audit import AuditEvent, AuditEventType


class DomainEvent(Enum):
    """Observable ledger events"""
    DEPOSIT = "ledger.deposit"
    WITHDRAWAL = "ledger.withdrawal"


_EVENT_FOR_RECORD = {
    AuditEventType.DEPOSIT: DomainEvent.DEPOSIT,
    AuditEventType.WITHDRAWAL: DomainEvent.WITHDRAWAL,
}


@dataclass
class EventPayload:
    """Payload for ledger events"""
    event_type: DomainEvent
    ledger: str
    identity: str
    amount: int
    sequence: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'event_type': self.event_type.value,
            'ledger': self.ledger,
            'identity': self.identity,
            'amount': str(self.amount),
            'sequence': self.sequence,
            'timestamp': self.timestamp.isoformat(),
            'event_id': self.event_id
        }


def create_record_event(record: AuditEvent) -> Optional[EventPayload]:
    """Build the observable event for a stored record, if it has one"""
    event_type = _EVENT_FOR_RECORD.get(record.event_type)
    if event_type is None:
        return None
    return EventPayload(
        event_type=event_type,
        ledger=record.ledger,
        identity=record.identity,
        amount=record.amount,
        sequence=record.sequence,
        timestamp=record.created_at,
        event_id=record.id
    )


class EventDispatcher:
    """Central event dispatcher, publish/subscribe pattern"""

    def __init__(self):
        self._handlers: Dict[DomainEvent, List[Callable]] = {}
        self._global_handlers: List[Callable] = []
        self._lock = RLock()
        self.logger = logging.getLogger("custody.events")

    @staticmethod
    def _name(handler: Callable) -> str:
        return getattr(handler, "__name__", repr(handler))

    def subscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
            self.logger.debug(f"Subscribed handler {self._name(handler)} to {event_type.value}")

    def subscribe_all(self, handler: Callable) -> None:
        """Subscribe to ALL events"""
        with self._lock:
            self._global_handlers.append(handler)
            self.logger.debug(f"Subscribed global handler {self._name(handler)}")

    def unsubscribe(self, event_type: DomainEvent, handler: Callable) -> None:
        """Unsubscribe from a specific event type"""
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
            except ValueError:
                self.logger.warning(f"Handler {self._name(handler)} was not subscribed to {event_type.value}")

    def unsubscribe_all(self, handler: Callable) -> None:
        """Unsubscribe a global handler"""
        with self._lock:
            try:
                self._global_handlers.remove(handler)
            except ValueError:
                self.logger.warning(f"Global handler {self._name(handler)} was not subscribed")

    def publish(self, event: EventPayload) -> None:
        """Publish event to all subscribers"""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._global_handlers)

        self.logger.debug(f"Publishing {event.event_type.value} #{event.sequence} for {event.identity}")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # The ledger state is already committed; a failing observer
                # must not affect other observers
                self.logger.error(f"Error in event handler {self._name(handler)} for {event.event_type.value}: {e}")

    def clear(self) -> None:
        """Clear all handlers"""
        with self._lock:
            self._handlers.clear()
            self._global_handlers.clear()

    def get_handler_count(self, event_type: Optional[DomainEvent] = None) -> int:
        """Get count of handlers for a specific event type or all"""
        with self._lock:
            if event_type:
                return len(self._handlers.get(event_type, []))
            total = sum(len(handlers) for handlers in self._handlers.values())
            return total + len(self._global_handlers)
