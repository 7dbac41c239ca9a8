"""
Tests for the event dispatcher
"""

from datetime import datetime
from unittest.mock import Mock

from custody_ledger.storage import InMemoryStorage
from custody_ledger.audit import AuditTrail, AuditEventType
from custody_ledger.events import (
    DomainEvent, EventPayload, EventDispatcher, create_record_event
)


def make_event(event_type=DomainEvent.DEPOSIT, amount=10):
    return EventPayload(
        event_type=event_type,
        ledger="vault",
        identity="alice",
        amount=amount,
        sequence=1
    )


class TestEventPayload:
    """Test payload creation"""

    def test_defaults(self):
        event = make_event()

        assert isinstance(event.timestamp, datetime)
        assert len(event.event_id) > 0

    def test_to_dict(self):
        data = make_event(DomainEvent.WITHDRAWAL, 2 ** 70).to_dict()

        assert data['event_type'] == "ledger.withdrawal"
        assert data['amount'] == str(2 ** 70)
        assert data['identity'] == "alice"

    def test_created_from_records(self):
        """Test only deposit and withdrawal records become events"""
        trail = AuditTrail(InMemoryStorage(), "vault")
        opened = trail.log_event(AuditEventType.LEDGER_OPENED, "deployer", 0)
        deposit = trail.log_event(AuditEventType.DEPOSIT, "alice", 7)

        assert create_record_event(opened) is None
        event = create_record_event(deposit)
        assert event.event_type == DomainEvent.DEPOSIT
        assert event.amount == 7
        assert event.sequence == 2
        assert event.event_id == deposit.id


class TestEventDispatcher:
    """Test subscription and publication"""

    def test_specific_subscription(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.DEPOSIT, handler)

        deposit = make_event(DomainEvent.DEPOSIT)
        dispatcher.publish(deposit)
        dispatcher.publish(make_event(DomainEvent.WITHDRAWAL))

        handler.assert_called_once_with(deposit)

    def test_global_subscription(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe_all(handler)

        dispatcher.publish(make_event(DomainEvent.DEPOSIT))
        dispatcher.publish(make_event(DomainEvent.WITHDRAWAL))

        assert handler.call_count == 2

    def test_failing_handler_does_not_block_others(self):
        dispatcher = EventDispatcher()
        broken = Mock(side_effect=RuntimeError("observer down"))
        healthy = Mock()
        dispatcher.subscribe(DomainEvent.DEPOSIT, broken)
        dispatcher.subscribe(DomainEvent.DEPOSIT, healthy)

        dispatcher.publish(make_event())

        healthy.assert_called_once()

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.DEPOSIT, handler)
        dispatcher.subscribe_all(handler)
        assert dispatcher.get_handler_count() == 2

        dispatcher.unsubscribe(DomainEvent.DEPOSIT, handler)
        dispatcher.unsubscribe_all(handler)
        dispatcher.unsubscribe(DomainEvent.WITHDRAWAL, handler)

        dispatcher.publish(make_event())
        handler.assert_not_called()
        assert dispatcher.get_handler_count() == 0

    def test_clear(self):
        dispatcher = EventDispatcher()
        dispatcher.subscribe(DomainEvent.DEPOSIT, Mock())
        dispatcher.clear()

        assert dispatcher.get_handler_count(DomainEvent.DEPOSIT) == 0
