"""
Ledger endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, HTTPException, Depends, Query

from .system import CustodySystem, get_custody_system
from .schemas import (
    DepositRequest, WithdrawRequest, BalanceResponse, RecordResponse, amount_fields
)
from ..errors import LedgerError, HostError


router = APIRouter()


@router.get("")
async def get_ledger(system: CustodySystem = Depends(get_custody_system)):
    """Global ledger state"""
    summary = system.ledger.summary()
    return {
        "address": summary["address"],
        "bank_cap": amount_fields(summary["bank_cap"]),
        "withdraw_limit": amount_fields(summary["withdraw_limit"]),
        "total_held_value": amount_fields(summary["total_held_value"]),
        "total_deposits": summary["total_deposits"],
        "total_withdrawals": summary["total_withdrawals"],
        "record_count": summary["record_count"]
    }


@router.get("/balances/{identity}", response_model=BalanceResponse)
async def get_balance(identity: str, system: CustodySystem = Depends(get_custody_system)):
    """Balance owed to an identity"""
    return BalanceResponse(
        identity=identity,
        balance=amount_fields(system.ledger.balance_of(identity))
    )


@router.post("/deposit")
async def deposit(
    request: DepositRequest,
    system: CustodySystem = Depends(get_custody_system)
):
    """Deposit native value held by the caller"""
    try:
        amount = request.to_base_units()
        system.ledger.deposit(request.caller, amount)
    except (LedgerError, HostError) as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": "invalid_amount", "message": str(e)})

    return {
        "caller": request.caller,
        "amount": amount_fields(amount),
        "balance": amount_fields(system.ledger.balance_of(request.caller)),
        "message": "Deposit recorded"
    }


@router.post("/withdraw")
async def withdraw(
    request: WithdrawRequest,
    system: CustodySystem = Depends(get_custody_system)
):
    """Withdraw from the caller's balance back to the caller"""
    try:
        amount = request.to_base_units()
        system.ledger.withdraw(request.caller, amount)
    except (LedgerError, HostError) as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": "invalid_amount", "message": str(e)})

    return {
        "caller": request.caller,
        "amount": amount_fields(amount),
        "balance": amount_fields(system.ledger.balance_of(request.caller)),
        "message": "Withdrawal sent"
    }


@router.get("/records", response_model=List[RecordResponse])
async def get_records(
    limit: Optional[int] = Query(None, ge=1),
    system: CustodySystem = Depends(get_custody_system)
):
    """Emitted ledger records, oldest first"""
    return [RecordResponse.from_record(r) for r in system.ledger.records(limit=limit)]


@router.get("/records/verify")
async def verify_records(system: CustodySystem = Depends(get_custody_system)):
    """Check the record hash chain"""
    return system.ledger.audit_trail.verify_integrity()
