from typing import List

from fastapi import APIRouter, HTTPException, status

from partipay.services.bank_service import BankService

router = APIRouter()


@router.get("", response_model=List[dict])
async def list_banks():
    """Banks available for linking a payout account."""
    return BankService.list_banks()


@router.get("/{bank_id}/accounts", response_model=List[dict])
async def list_accounts(bank_id: str):
    accounts = BankService.list_accounts(bank_id)
    if not accounts:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Bank not found"
        )
    return accounts
