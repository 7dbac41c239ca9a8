"""
Execution environment endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .system import CustodySystem, get_custody_system
from .schemas import MintRequest, BalanceResponse, amount_fields


router = APIRouter()


@router.post("/mint")
async def mint(
    request: MintRequest,
    system: CustodySystem = Depends(get_custody_system)
):
    """Credit native value to an identity (development faucet)"""
    try:
        amount = request.to_base_units()
        balance = system.host.mint(request.identity, amount)
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": "invalid_amount", "message": str(e)})

    return {
        "identity": request.identity,
        "minted": amount_fields(amount),
        "native_balance": amount_fields(balance)
    }


@router.get("/balances/{identity}", response_model=BalanceResponse)
async def get_native_balance(identity: str, system: CustodySystem = Depends(get_custody_system)):
    """Native value held for an identity"""
    return BalanceResponse(
        identity=identity,
        balance=amount_fields(system.host.balance_of(identity))
    )
