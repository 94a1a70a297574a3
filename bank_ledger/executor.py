"""
Operation Executor Module

Runs CreateAccount, Deposit, Withdraw and Transfer against the account
store, the transaction log and the error journal.

Guarantees:
- no balance is ever observed below zero
- a balance change and its transaction record are applied together or not
  at all
- a transfer either moves the money and appends exactly one record, or
  leaves both balances exactly as they were
- every failed withdrawal or transfer leaves an error journal entry that
  survives the rollback of the operation

Withdraw and Transfer hold the exclusive lock of every account they debit
from the balance check through the log append. Deposits only add, so they
run without an account lock.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
from contextlib import contextmanager
from enum import Enum

from .accounts import Account, AccountStore
from .transactions import TransactionLog, TransactionRecord, TransactionType
from .error_journal import ErrorJournal
from .money import AmountLike, format_amount, parse_amount
from .errors import (
    TRANSFER_INSUFFICIENT_CODE, AccountNotFoundError, InsufficientFundsError, ValidationError
)
from .logging_config import get_logger, log_action


AccountRef = Union[int, str]


class TransferState(Enum):
    """Lifecycle of a transfer"""
    STARTED = "started"
    SOURCE_DEBITED = "source_debited"
    DESTINATION_CREDITED = "destination_credited"
    LOGGED = "logged"            # terminal success
    ROLLED_BACK = "rolled_back"  # terminal failure


class Savepoint:
    """
    Rollback point for one operation

    Remembers the balances seen when the operation started and every delta
    applied since. ``rollback`` applies the inverse deltas newest first,
    which puts each touched balance back to its pre-operation value.
    """

    def __init__(self, accounts: AccountStore, *account_ids: int):
        self.accounts = accounts
        self.balances: Dict[int, Decimal] = {
            account_id: accounts.get(account_id).balance for account_id in account_ids
        }
        self._applied: List[Tuple[int, Decimal]] = []

    def applied(self, account_id: int, delta: Decimal) -> None:
        self._applied.append((account_id, delta))

    @property
    def dirty(self) -> bool:
        return bool(self._applied)

    def rollback(self) -> None:
        while self._applied:
            account_id, delta = self._applied.pop()
            self.accounts.add(account_id, -delta)


@dataclass
class TransferAttempt:
    """State of one transfer as it moves through its lifecycle"""
    from_account_id: int
    to_account_id: int
    amount: Decimal
    state: TransferState = TransferState.STARTED
    history: List[TransferState] = field(default_factory=lambda: [TransferState.STARTED])

    def advance(self, state: TransferState) -> None:
        self.state = state
        self.history.append(state)


class LedgerExecutor:
    """
    Entry point for every balance-affecting operation
    """

    def __init__(
        self,
        accounts: AccountStore,
        transaction_log: TransactionLog,
        error_journal: ErrorJournal
    ):
        if accounts.storage is not transaction_log.storage:
            raise ValueError("Accounts and transaction log must share one storage backend")
        self.accounts = accounts
        self.transaction_log = transaction_log
        self.error_journal = error_journal
        self.storage = accounts.storage
        self.logger = get_logger("ledger.executor")

    # Queries

    def get_account(self, account_id: AccountRef) -> Account:
        return self.accounts.get(self._account_id(account_id))

    def balance(self, account_id: AccountRef) -> Decimal:
        return self.get_account(account_id).balance

    def history(
        self,
        account_id: AccountRef,
        transaction_types: Optional[List[TransactionType]] = None
    ) -> List[TransactionRecord]:
        account_id = self._require(self._account_id(account_id))
        return self.transaction_log.for_account(account_id, transaction_types)

    # Operations

    def create_account(self, name: str, initial_balance: AmountLike) -> int:
        """
        Open an account; no transaction record is written

        Returns:
            The new account id
        """
        return self.accounts.create(name, initial_balance)

    def deposit(self, account_id: AccountRef, amount: AmountLike) -> TransactionRecord:
        """
        Credit an account

        The increment and the DEPOSIT record are one atomic unit.

        Raises:
            ValidationError: amount not positive or account id malformed
            AccountNotFoundError: no such account
        """
        amount = parse_amount(amount)
        account_id = self._require(self._account_id(account_id))

        try:
            with self._unit_of_work(account_id) as savepoint:
                self.accounts.add(account_id, amount)
                savepoint.applied(account_id, amount)
                record = self.transaction_log.append(TransactionType.DEPOSIT, account_id, amount)
        except Exception as exc:
            self._fail("DEPOSIT", str(exc), account_id, amount)
            raise

        self._succeed("DEPOSIT", record)
        return record

    def withdraw(self, account_id: AccountRef, amount: AmountLike) -> TransactionRecord:
        """
        Debit an account under its exclusive lock

        Raises:
            ValidationError: amount not positive or account id malformed
            AccountNotFoundError: no such account
            InsufficientFundsError: balance below amount; balance unchanged
        """
        amount = parse_amount(amount)
        account_id = self._require(self._account_id(account_id))

        def debit(balance: Decimal) -> Decimal:
            if balance < amount:
                raise InsufficientFundsError(account_id, amount, balance)
            return balance - amount

        try:
            with self.accounts.lock(account_id):
                with self._unit_of_work(account_id) as savepoint:
                    self.accounts.with_lock(account_id, debit)
                    savepoint.applied(account_id, -amount)
                    record = self.transaction_log.append(TransactionType.WITHDRAW, account_id, amount)
        except InsufficientFundsError:
            self._fail("WITHDRAW", f"Insufficient balance for account {account_id}", account_id, amount)
            raise
        except Exception as exc:
            self._fail("WITHDRAW", str(exc), account_id, amount)
            raise

        self._succeed("WITHDRAW", record)
        return record

    def transfer(
        self,
        from_account_id: AccountRef,
        to_account_id: AccountRef,
        amount: AmountLike
    ) -> TransactionRecord:
        """
        Move money between two accounts, all or nothing

        Both accounts are locked in ascending id order. The source is debited
        with one conditional decrement, the target credited, and one TRANSFER
        record appended. A failure at any step after the debit restores both
        balances before the error is raised.

        Raises:
            ValidationError: amount not positive, ids malformed or equal
            AccountNotFoundError: either account missing
            InsufficientFundsError: source balance below amount
        """
        amount = parse_amount(amount)
        from_id = self._account_id(from_account_id, "from_account_id")
        to_id = self._account_id(to_account_id, "to_account_id")
        if from_id == to_id:
            raise ValidationError("Cannot transfer to the same account")
        self._require(from_id)
        self._require(to_id)

        attempt = TransferAttempt(from_id, to_id, amount)
        try:
            with self.accounts.lock(from_id, to_id):
                record = self._run_transfer(attempt)
        except InsufficientFundsError as exc:
            self._fail("TRANSFER", exc.message, from_id, amount)
            raise
        except Exception as exc:
            self._fail("TRANSFER", str(exc), from_id, amount)
            raise

        self._succeed("TRANSFER", record)
        return record

    def _run_transfer(self, attempt: TransferAttempt) -> TransactionRecord:
        from_id, to_id, amount = attempt.from_account_id, attempt.to_account_id, attempt.amount
        try:
            with self._unit_of_work(from_id, to_id) as savepoint:
                if not self.accounts.debit_if_sufficient(from_id, amount):
                    raise InsufficientFundsError(
                        from_id, amount, savepoint.balances[from_id],
                        sql_code=TRANSFER_INSUFFICIENT_CODE,
                        message=f"Transfer failed: Insufficient funds in account {from_id}"
                    )
                savepoint.applied(from_id, -amount)
                self._advance(attempt, TransferState.SOURCE_DEBITED)

                self.accounts.add(to_id, amount)
                savepoint.applied(to_id, amount)
                self._advance(attempt, TransferState.DESTINATION_CREDITED)

                record = self.transaction_log.append(
                    TransactionType.TRANSFER, from_id, amount, target_account_id=to_id
                )
                self._advance(attempt, TransferState.LOGGED)
        except Exception:
            self._advance(attempt, TransferState.ROLLED_BACK)
            raise
        return record

    # Helpers

    @contextmanager
    def _unit_of_work(self, *account_ids: int):
        """Atomic storage unit guarded by a savepoint over the given accounts"""
        with self.storage.atomic():
            savepoint = Savepoint(self.accounts, *account_ids)
            try:
                yield savepoint
            except Exception:
                if savepoint.dirty:
                    try:
                        savepoint.rollback()
                    except Exception:
                        self.logger.exception(
                            f"Compensation failed for accounts {sorted(savepoint.balances)}"
                        )
                raise

    def _advance(self, attempt: TransferAttempt, state: TransferState) -> None:
        attempt.advance(state)
        self.logger.debug(
            f"Transfer {attempt.from_account_id}->{attempt.to_account_id} "
            f"{format_amount(attempt.amount)}: {state.value}"
        )

    def _account_id(self, value: AccountRef, field_name: str = "account_id") -> int:
        if isinstance(value, bool):
            raise ValidationError(f"{field_name} must be an integer, got {value!r}")
        if isinstance(value, int):
            account_id = value
        elif isinstance(value, str) and value.strip().isdigit():
            account_id = int(value.strip())
        else:
            raise ValidationError(f"{field_name} must be an integer, got {value!r}")
        if account_id <= 0:
            raise ValidationError(f"{field_name} must be positive, got {account_id}")
        return account_id

    def _require(self, account_id: int) -> int:
        if not self.accounts.exists(account_id):
            raise AccountNotFoundError(account_id)
        return account_id

    def _succeed(self, procedure: str, record: TransactionRecord) -> None:
        extra = {
            "transaction_id": record.id,
            "amount": format_amount(record.amount),
        }
        if record.target_account_id is not None:
            extra["target_account_id"] = record.target_account_id
        log_action(
            self.logger, "info", f"{procedure} completed",
            action=procedure.lower(), resource=f"account:{record.account_id}",
            procedure=procedure, extra=extra
        )

    def _fail(self, procedure: str, message: str, account_id: int, amount: Decimal) -> None:
        """Journal a failure; a journal problem is logged and never masks the original error"""
        log_action(
            self.logger, "warning", f"{procedure} failed: {message}",
            action=procedure.lower(), resource=f"account:{account_id}",
            procedure=procedure, extra={"amount": format_amount(amount)}
        )
        try:
            self.error_journal.record(message, procedure)
        except Exception:
            self.logger.exception(f"Could not journal {procedure} failure: {message}")
