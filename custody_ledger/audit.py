"""
Record Log Module

Hash-chained, append-only log of the records a ledger emits. Entries are
written inside the invocation's atomic frame, so a rolled-back invocation
leaves no entry behind and the chain never contains a gap.
"""

import hashlib
import json
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of ledger records"""
    LEDGER_OPENED = "ledger_opened"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable ledger record with hash chaining for tamper detection
    """
    sequence: int
    event_type: AuditEventType
    ledger: str       # Address of the emitting ledger
    identity: str     # Caller (or deployer) the record is about
    amount: int       # Base units
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this record
        Hash includes all fields except current_hash
        """
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'ledger': self.ledger,
            'identity': self.identity,
            'amount': str(self.amount),
            'previous_hash': self.previous_hash,
            'metadata': self.metadata
        }

        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        # Amounts can exceed what JSON consumers handle as numbers
        result['amount'] = str(self.amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        """Create AuditEvent from its stored dictionary"""
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['event_type'] = AuditEventType(data['event_type'])
        data['amount'] = int(data['amount'])
        return cls(**data)


class AuditTrail:
    """
    Hash-chained record log for one ledger
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: str,
        table_name: str = "ledger_records",
        head_table: str = "ledger_record_heads"
    ):
        self.storage = storage
        self.ledger = ledger
        self.table_name = table_name
        # Newest sequence and hash per ledger, so appending never rescans the log
        self.head_table = head_table

    def _load_events(self) -> List[AuditEvent]:
        events = [AuditEvent.from_dict(data)
                  for data in self.storage.find(self.table_name, {'ledger': self.ledger})]
        events.sort(key=lambda e: e.sequence)
        return events

    def _head(self) -> Dict[str, Any]:
        head = self.storage.load(self.head_table, self.ledger)
        return head or {'sequence': 0, 'hash': ""}

    def last_sequence(self) -> int:
        """Sequence number of the newest record, 0 when empty"""
        return self._head()['sequence']

    def log_event(
        self,
        event_type: AuditEventType,
        identity: str,
        amount: int,
        metadata: Optional[Dict[str, Any]] = None
    ) -> AuditEvent:
        """
        Append a record to the chain

        Args:
            event_type: Kind of record
            identity: Identity the record is about
            amount: Amount in base units
            metadata: Additional record data

        Returns:
            Created AuditEvent
        """
        with self.storage.atomic():
            head = self._head()
            now = datetime.now(timezone.utc)

            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=head['sequence'] + 1,
                event_type=event_type,
                ledger=self.ledger,
                identity=identity,
                amount=amount,
                previous_hash=head['hash'],
                current_hash="",
                metadata=metadata or {}
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, event.id, event.to_dict())
            self.storage.save(self.head_table, self.ledger, {
                'sequence': event.sequence,
                'hash': event.current_hash
            })
            return event

    def get_all_events(
        self,
        event_type: Optional[AuditEventType] = None,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """
        Get records, oldest first

        Args:
            event_type: Only records of this type
            limit: Keep only the most recent N records
        """
        events = self._load_events()
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        if limit:
            events = events[-limit:]
        return events

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': [],
        }

        events = self._load_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for expected_sequence, event in enumerate(events, start=1):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append(event.id)
            if event.previous_hash != previous_hash or event.sequence != expected_sequence:
                result['valid'] = False
                result['chain_breaks'].append(event.id)
            previous_hash = event.current_hash

        return result
