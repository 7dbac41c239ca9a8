"""
Ledger Error Taxonomy

Every rejected ledger invocation raises a LedgerError tagged with one of the
six LedgerErrorKind values. Host (execution environment) failures use the
separate HostError family.
"""

from enum import Enum
from typing import Any, Dict, Optional


class LedgerErrorKind(Enum):
    """Caller-visible reasons a ledger invocation is aborted"""
    INVALID_DEPOSIT_AMOUNT = "invalid_deposit_amount"
    DEPOSIT_CAP_REACHED = "deposit_cap_reached"
    INVALID_WITHDRAW_AMOUNT = "invalid_withdraw_amount"
    WITHDRAW_LIMIT_EXCEEDED = "withdraw_limit_exceeded"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    TRANSFER_FAILED = "transfer_failed"


class LedgerError(Exception):
    """
    Base class for aborted ledger invocations.

    Subclasses pin ``kind``; the invocation that raised it has already been
    rolled back by the time the caller sees it.
    """
    kind: LedgerErrorKind

    def __init__(self, message: str, caller: Optional[str] = None,
                 amount: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.caller = caller
        self.amount = amount

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by the HTTP layer"""
        result = {
            "error": self.kind.value,
            "message": self.message,
        }
        if self.caller is not None:
            result["caller"] = self.caller
        if self.amount is not None:
            result["amount"] = str(self.amount)
        return result


class InvalidDepositAmount(LedgerError):
    """Deposit carried no value"""
    kind = LedgerErrorKind.INVALID_DEPOSIT_AMOUNT


class DepositCapReached(LedgerError):
    """Value held by the ledger exceeds the bank cap after crediting"""
    kind = LedgerErrorKind.DEPOSIT_CAP_REACHED


class InvalidWithdrawAmount(LedgerError):
    """Withdrawal requested zero"""
    kind = LedgerErrorKind.INVALID_WITHDRAW_AMOUNT


class WithdrawLimitExceeded(LedgerError):
    """Withdrawal above the per-operation ceiling"""
    kind = LedgerErrorKind.WITHDRAW_LIMIT_EXCEEDED


class InsufficientBalance(LedgerError):
    """Caller's balance is below the requested amount"""
    kind = LedgerErrorKind.INSUFFICIENT_BALANCE


class TransferFailed(LedgerError):
    """The value transfer back to the caller did not succeed"""
    kind = LedgerErrorKind.TRANSFER_FAILED


class HostError(Exception):
    """Failure raised by the execution environment rather than the ledger"""

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "host_error", "message": str(self)}


class InsufficientNativeFunds(HostError):
    """Sender does not hold enough native value for the movement"""

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "insufficient_native_funds", "message": str(self)}


class TransferRejected(HostError):
    """Recipient's receiver hook declined the incoming value"""

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "transfer_rejected", "message": str(self)}
