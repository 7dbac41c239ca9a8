"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..audit import AuditEvent
from ..units import format_units, whole_units


class AmountModel(BaseModel):
    """Amount given in whole units, e.g. "12.5" """
    amount: str = Field(..., description="Whole units as a decimal string")

    def to_base_units(self) -> int:
        return whole_units(self.amount)


class DepositRequest(AmountModel):
    caller: str


class WithdrawRequest(AmountModel):
    caller: str


class MintRequest(AmountModel):
    identity: str


def amount_fields(amount: int) -> Dict[str, str]:
    """Base units as a string plus the human-readable form"""
    return {
        "base_units": str(amount),
        "display": format_units(amount)
    }


class BalanceResponse(BaseModel):
    identity: str
    balance: Dict[str, str]


class RecordResponse(BaseModel):
    sequence: int
    event_type: str
    identity: str
    amount: Dict[str, str]
    created_at: str
    hash: str
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_record(cls, record: AuditEvent) -> 'RecordResponse':
        return cls(
            sequence=record.sequence,
            event_type=record.event_type.value,
            identity=record.identity,
            amount=amount_fields(record.amount),
            created_at=record.created_at.isoformat(),
            hash=record.current_hash,
            metadata=record.metadata or None
        )
