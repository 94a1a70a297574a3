"""
Pydantic schemas for API requests and responses
"""

from typing import Optional
from pydantic import BaseModel, Field

from ..accounts import Account
from ..transactions import TransactionRecord
from ..error_journal import ErrorLogEntry
from ..money import format_amount


class CreateAccountRequest(BaseModel):
    name: str = Field(..., description="Account holder name")
    initial_balance: str = Field("0.00", description="Decimal amount as string")


class DepositRequest(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class WithdrawRequest(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class AccountResponse(BaseModel):
    account_id: int
    name: str
    balance: str
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> 'AccountResponse':
        return cls(
            account_id=account.id,
            name=account.name,
            balance=format_amount(account.balance),
            created_at=account.created_at.isoformat()
        )


class TransactionResponse(BaseModel):
    transaction_id: int
    account_id: int
    target_account_id: Optional[int] = None
    transaction_type: str
    amount: str
    timestamp: str

    @classmethod
    def from_record(cls, record: TransactionRecord) -> 'TransactionResponse':
        return cls(
            transaction_id=record.id,
            account_id=record.account_id,
            target_account_id=record.target_account_id,
            transaction_type=record.transaction_type.value,
            amount=format_amount(record.amount),
            timestamp=record.timestamp.isoformat()
        )


class ErrorLogResponse(BaseModel):
    log_id: int
    error_time: str
    error_message: str
    procedure_name: str

    @classmethod
    def from_entry(cls, entry: ErrorLogEntry) -> 'ErrorLogResponse':
        return cls(
            log_id=entry.id,
            error_time=entry.timestamp.isoformat(),
            error_message=entry.message,
            procedure_name=entry.procedure_name
        )
