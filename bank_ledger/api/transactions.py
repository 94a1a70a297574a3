"""
Transaction endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .deps import get_ledger
from .schemas import DepositRequest, WithdrawRequest, TransferRequest, TransactionResponse
from ..ledger import Ledger


router = APIRouter()


@router.post("/deposit", status_code=status.HTTP_201_CREATED, response_model=TransactionResponse)
def deposit(request: DepositRequest, ledger: Ledger = Depends(get_ledger)):
    """Make a deposit"""
    record = ledger.deposit(request.account_id, request.amount)
    return TransactionResponse.from_record(record)


@router.post("/withdraw", status_code=status.HTTP_201_CREATED, response_model=TransactionResponse)
def withdraw(request: WithdrawRequest, ledger: Ledger = Depends(get_ledger)):
    """Make a withdrawal"""
    record = ledger.withdraw(request.account_id, request.amount)
    return TransactionResponse.from_record(record)


@router.post("/transfer", status_code=status.HTTP_201_CREATED, response_model=TransactionResponse)
def transfer(request: TransferRequest, ledger: Ledger = Depends(get_ledger)):
    """Make a transfer between accounts"""
    record = ledger.transfer(request.from_account_id, request.to_account_id, request.amount)
    return TransactionResponse.from_record(record)


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(transaction_id: int, ledger: Ledger = Depends(get_ledger)):
    """Get a single transaction record"""
    record = ledger.transaction_log.get(transaction_id)
    if not record:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionResponse.from_record(record)
