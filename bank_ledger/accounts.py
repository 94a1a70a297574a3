"""
Account Management Module

Holds the current balance of every account and is the single place through
which balances change. Debits go through an exclusive per-account lock
(``with_lock``) or an atomic check-and-set (``debit_if_sufficient``); credits
may use the non-locking ``add`` since they cannot drive a balance negative.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from contextlib import contextmanager
import threading

from .storage import StorageInterface
from .sequences import SequenceGenerator
from .money import ZERO, AmountLike, format_amount, parse_amount
from .errors import (
    AccountNotFoundError, ConcurrencyConflictError, InsufficientFundsError, ValidationError
)
from .logging_config import get_logger, log_action


MAX_NAME_LENGTH = 50


@dataclass(frozen=True)
class Account:
    """Snapshot of an account row"""
    id: int
    name: str
    balance: Decimal
    created_at: datetime

    def to_dict(self) -> Dict:
        return {
            "account_id": self.id,
            "account_name": self.name,
            "balance": format_amount(self.balance),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        return cls(
            id=int(data["account_id"]),
            name=data["account_name"],
            balance=Decimal(data["balance"]),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


class AccountLockManager:
    """
    Per-account exclusive locks

    Locks are re-entrant so an operation already holding an account can pass
    through helpers that lock it again. Several accounts are always taken in
    ascending id order.
    """

    def __init__(self, timeout: Optional[float] = 10.0, retry_attempts: int = 3):
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self._locks: Dict[int, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self.logger = get_logger("ledger.locks")

    def _lock_for(self, account_id: int) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = threading.RLock()
            return lock

    def _acquire(self, account_id: int, lock: threading.RLock) -> None:
        for attempt in range(1, self.retry_attempts + 1):
            if self.timeout is None:
                acquired = lock.acquire()
            else:
                acquired = lock.acquire(timeout=self.timeout)
            if acquired:
                return
            self.logger.warning(
                f"Timed out waiting for lock on account {account_id} "
                f"(attempt {attempt}/{self.retry_attempts})"
            )
        raise ConcurrencyConflictError(
            f"Could not lock account {account_id} after {self.retry_attempts} attempts"
        )

    @contextmanager
    def acquire(self, *account_ids: int):
        """Hold the locks of all given accounts, taken in ascending id order"""
        held = []
        try:
            for account_id in sorted(set(account_ids)):
                lock = self._lock_for(account_id)
                self._acquire(account_id, lock)
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()


class AccountStore:
    """
    Current balance per account with locked read-modify-write
    """

    def __init__(
        self,
        storage: StorageInterface,
        sequences: SequenceGenerator,
        locks: Optional[AccountLockManager] = None
    ):
        self.storage = storage
        self.sequences = sequences
        self.locks = locks or AccountLockManager()
        self.table_name = "accounts"
        self.logger = get_logger("ledger.accounts")

    def create(self, name: str, initial_balance: AmountLike) -> int:
        """
        Create a new account

        Args:
            name: Account holder name (non-empty, at most 50 characters)
            initial_balance: Opening balance, must be >= 0

        Returns:
            Newly assigned account id
        """
        self._check_name(name)
        balance = parse_amount(initial_balance, "initial_balance", allow_zero=True)

        account = Account(
            id=self.sequences.next_account_id(),
            name=name,
            balance=balance,
            created_at=datetime.now(timezone.utc),
        )
        self.storage.insert(self.table_name, str(account.id), account.to_dict())

        log_action(
            self.logger, "info", f"Account created: {account.id}",
            action="create_account", resource=f"account:{account.id}",
            extra={"name": name, "initial_balance": format_amount(balance)}
        )
        return account.id

    def restore(self, account: Account) -> None:
        """
        Insert an account keeping its id and creation time (bulk import)

        The name and balance go through the same checks as ``create``; a
        balance with sub-cent digits is rejected rather than rounded.
        """
        if account.id <= 0:
            raise ValidationError(f"Account id must be positive, got {account.id}")
        self._check_name(account.name)
        parse_amount(account.balance, "balance", allow_zero=True)
        self.storage.insert(self.table_name, str(account.id), account.to_dict())
        self.sequences.sequence("accounts").advance_past(account.id)

    def get(self, account_id: int) -> Account:
        data = self.storage.load(self.table_name, str(account_id))
        if data is None:
            raise AccountNotFoundError(account_id)
        return Account.from_dict(data)

    def exists(self, account_id: int) -> bool:
        return self.storage.exists(self.table_name, str(account_id))

    def list_accounts(self) -> List[Account]:
        """All accounts ordered by id"""
        accounts = [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]
        accounts.sort(key=lambda account: account.id)
        return accounts

    def total_balance(self) -> Decimal:
        return sum((account.balance for account in self.list_accounts()), ZERO)

    def lock(self, *account_ids: int):
        """Exclusive access to the given accounts for the span of a with-block"""
        return self.locks.acquire(*account_ids)

    def with_lock(self, account_id: int, fn: Callable[[Decimal], Decimal]) -> Decimal:
        """
        Locked read-modify-write of one balance

        Takes the account's exclusive lock, calls ``fn`` with the current
        balance and stores the balance it returns. Anything ``fn`` writes to
        the same storage joins the same atomic unit; if ``fn`` raises, nothing
        is applied.

        Returns:
            The balance now stored
        """
        with self.lock(account_id):
            with self.storage.atomic():
                current = self.get(account_id).balance
                new_balance = Decimal(fn(current))
                if new_balance < 0:
                    raise InsufficientFundsError(account_id, current - new_balance, current)
                if new_balance != current:
                    self._write_balance(account_id, new_balance)
                return new_balance.quantize(ZERO)

    def add(self, account_id: int, delta: Decimal) -> None:
        """Atomic non-locking increment (credits, and undoing an applied delta)"""
        def apply(record):
            balance = Decimal(record["balance"]) + delta
            if balance < 0:
                raise InsufficientFundsError(account_id, -delta, Decimal(record["balance"]))
            record["balance"] = format_amount(balance)
            return record

        if not self.storage.update(self.table_name, str(account_id), apply):
            raise AccountNotFoundError(account_id)

    def debit_if_sufficient(self, account_id: int, amount: Decimal) -> bool:
        """
        Subtract ``amount`` only if the balance covers it

        The check and the write happen in one atomic storage update.

        Returns:
            True if the balance was debited, False if it was too low
        """
        def apply(record):
            balance = Decimal(record["balance"])
            if balance < amount:
                return None
            record["balance"] = format_amount(balance - amount)
            return record

        if self.storage.update(self.table_name, str(account_id), apply):
            return True
        if not self.exists(account_id):
            raise AccountNotFoundError(account_id)
        return False

    @staticmethod
    def _check_name(name) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Account name must be a non-empty string")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Account name longer than {MAX_NAME_LENGTH} characters")

    def _write_balance(self, account_id: int, balance: Decimal) -> None:
        def apply(record):
            record["balance"] = format_amount(balance)
            return record

        if not self.storage.update(self.table_name, str(account_id), apply):
            raise AccountNotFoundError(account_id)
