"""
Ledger Error Taxonomy

Every failing ledger call raises one of these so callers can tell an invalid
request, a missing account, and an account without enough money apart.
Each kind carries a stable error code and an HTTP status for the API layer.

    ValidationError           VALIDATION_ERROR      400
    AccountNotFoundError      ACCOUNT_NOT_FOUND     404
    InsufficientFundsError    INSUFFICIENT_FUNDS    422
    ConcurrencyConflictError  CONCURRENCY_CONFLICT  409

Unexpected failures are not wrapped in any of these; they are journalled and
re-raised unchanged.
"""

from decimal import Decimal
from typing import Any, Dict, Optional


# Application error numbers raised by the withdraw and transfer procedures
WITHDRAW_INSUFFICIENT_CODE = -20001
TRANSFER_INSUFFICIENT_CODE = -20002


class LedgerError(Exception):
    """Base class for ledger business errors"""

    error_code = "LEDGER_ERROR"
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.error_code, "message": self.message}


class ValidationError(LedgerError, ValueError):
    """Caller input rejected before any state was touched"""

    error_code = "VALIDATION_ERROR"
    http_status = 400


class AccountNotFoundError(LedgerError):
    """Referenced account does not exist"""

    error_code = "ACCOUNT_NOT_FOUND"
    http_status = 404

    def __init__(self, account_id: int):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["account_id"] = self.account_id
        return result


class InsufficientFundsError(LedgerError):
    """Balance too low for the requested debit; balance left unchanged"""

    error_code = "INSUFFICIENT_FUNDS"
    http_status = 422

    def __init__(
        self,
        account_id: int,
        requested: Decimal,
        available: Optional[Decimal] = None,
        sql_code: int = WITHDRAW_INSUFFICIENT_CODE,
        message: Optional[str] = None
    ):
        super().__init__(message or f"Insufficient balance for account {account_id}")
        self.account_id = account_id
        self.requested = requested
        self.available = available
        self.sql_code = sql_code

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "account_id": self.account_id,
            "requested": str(self.requested),
            "sql_code": self.sql_code,
        })
        if self.available is not None:
            result["available"] = str(self.available)
        return result


class ConcurrencyConflictError(LedgerError):
    """Account lock could not be acquired within the retry budget"""

    error_code = "CONCURRENCY_CONFLICT"
    http_status = 409
