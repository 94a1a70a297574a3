"""
Account endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from .deps import get_ledger
from .schemas import AccountResponse, CreateAccountRequest, TransactionResponse
from ..ledger import Ledger
from ..transactions import TransactionType


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    ledger: Ledger = Depends(get_ledger)
):
    """Create a new account"""
    account_id = ledger.create_account(request.name, request.initial_balance)
    return {
        "account_id": account_id,
        "message": "Account created successfully"
    }


@router.get("", response_model=List[AccountResponse])
def list_accounts(ledger: Ledger = Depends(get_ledger)):
    """List all accounts ordered by id"""
    return [AccountResponse.from_account(a) for a in ledger.accounts.list_accounts()]


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: int, ledger: Ledger = Depends(get_ledger)):
    """Get account details"""
    return AccountResponse.from_account(ledger.executor.get_account(account_id))


@router.get("/{account_id}/transactions", response_model=List[TransactionResponse])
def get_account_transactions(
    account_id: int,
    transaction_type: Optional[List[TransactionType]] = Query(None),
    ledger: Ledger = Depends(get_ledger)
):
    """Transaction history of an account, oldest first, optionally of some types only"""
    records = ledger.executor.history(account_id, transaction_type)
    return [TransactionResponse.from_record(r) for r in records]
