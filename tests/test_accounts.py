"""
Tests for the account store and per-account locking
"""

import pytest
import threading
import time
from decimal import Decimal
from datetime import datetime, timezone

from bank_ledger.accounts import Account, AccountLockManager, AccountStore
from bank_ledger.sequences import SequenceGenerator
from bank_ledger.storage import InMemoryStorage, DuplicateRecordError
from bank_ledger.errors import (
    AccountNotFoundError, ConcurrencyConflictError, InsufficientFundsError, ValidationError
)


class TestAccountStore:
    """Test account creation, lookup and balance changes"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.sequences = SequenceGenerator()
        self.store = AccountStore(self.storage, self.sequences)

    def test_create_account(self):
        account_id = self.store.create("Alice", "5000")
        assert account_id == 1001

        account = self.store.get(account_id)
        assert account.name == "Alice"
        assert account.balance == Decimal("5000.00")
        assert account.created_at.tzinfo is not None

    def test_ids_increase(self):
        first = self.store.create("Alice", "0")
        second = self.store.create("Bob", "0")
        assert second > first

    def test_zero_opening_balance(self):
        account_id = self.store.create("Empty", 0)
        assert self.store.get(account_id).balance == Decimal("0.00")

    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 51])
    def test_invalid_name(self, name):
        with pytest.raises(ValidationError):
            self.store.create(name, "10")
        assert self.storage.count("accounts") == 0

    def test_name_at_limit(self):
        account_id = self.store.create("x" * 50, "10")
        assert self.store.get(account_id).name == "x" * 50

    def test_negative_opening_balance(self):
        with pytest.raises(ValidationError):
            self.store.create("Alice", "-1")
        assert self.storage.count("accounts") == 0

    def test_get_missing_account(self):
        with pytest.raises(AccountNotFoundError) as exc_info:
            self.store.get(9999)
        assert exc_info.value.account_id == 9999
        assert not self.store.exists(9999)

    def test_list_accounts_and_total(self):
        self.store.create("Alice", "5000")
        self.store.create("Bob", "3000")
        accounts = self.store.list_accounts()
        assert [a.name for a in accounts] == ["Alice", "Bob"]
        assert self.store.total_balance() == Decimal("8000.00")

    def test_with_lock_applies_new_balance(self):
        account_id = self.store.create("Alice", "100")
        new_balance = self.store.with_lock(account_id, lambda balance: balance - Decimal("40"))
        assert new_balance == Decimal("60.00")
        assert self.store.get(account_id).balance == Decimal("60.00")

    def test_with_lock_refuses_negative_result(self):
        account_id = self.store.create("Alice", "100")
        with pytest.raises(InsufficientFundsError) as exc_info:
            self.store.with_lock(account_id, lambda balance: balance - Decimal("150"))
        assert exc_info.value.available == Decimal("100.00")
        assert self.store.get(account_id).balance == Decimal("100.00")

    def test_with_lock_failure_discards_related_writes(self):
        account_id = self.store.create("Alice", "100")

        def fn(balance):
            self.storage.save("side_effects", "1", {"seen": str(balance)})
            raise RuntimeError("caller failed")

        with pytest.raises(RuntimeError):
            self.store.with_lock(account_id, fn)
        assert not self.storage.exists("side_effects", "1")
        assert self.store.get(account_id).balance == Decimal("100.00")

    def test_with_lock_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.store.with_lock(4242, lambda balance: balance)

    def test_add(self):
        account_id = self.store.create("Alice", "10")
        self.store.add(account_id, Decimal("2.50"))
        assert self.store.get(account_id).balance == Decimal("12.50")

        self.store.add(account_id, Decimal("-12.50"))
        assert self.store.get(account_id).balance == Decimal("0.00")

    def test_add_never_goes_negative(self):
        account_id = self.store.create("Alice", "10")
        with pytest.raises(InsufficientFundsError):
            self.store.add(account_id, Decimal("-10.01"))
        assert self.store.get(account_id).balance == Decimal("10.00")

    def test_add_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.store.add(4242, Decimal("1"))

    def test_debit_if_sufficient(self):
        account_id = self.store.create("Alice", "100")
        assert self.store.debit_if_sufficient(account_id, Decimal("100"))
        assert self.store.get(account_id).balance == Decimal("0.00")

        assert not self.store.debit_if_sufficient(account_id, Decimal("0.01"))
        assert self.store.get(account_id).balance == Decimal("0.00")

    def test_debit_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.store.debit_if_sufficient(4242, Decimal("1"))

    def test_restore_keeps_id_and_advances_sequence(self):
        created = datetime(2023, 10, 1, 9, 0, tzinfo=timezone.utc)
        self.store.restore(Account(2000, "Imported", Decimal("12.34"), created))

        restored = self.store.get(2000)
        assert restored.created_at == created
        assert self.store.create("Next", "0") == 2001

    def test_restore_refuses_duplicates(self):
        account_id = self.store.create("Alice", "1")
        with pytest.raises(DuplicateRecordError):
            self.store.restore(Account(account_id, "Again", Decimal("1"), datetime.now(timezone.utc)))

    def test_account_dict_round_trip(self):
        account = Account(1001, "Alice", Decimal("5000.00"), datetime(2023, 10, 1, tzinfo=timezone.utc))
        data = account.to_dict()
        assert data["balance"] == "5000.00"
        assert Account.from_dict(data) == account


class TestAccountLockManager:
    """Test exclusive per-account locks"""

    def test_locks_are_reentrant(self):
        locks = AccountLockManager(timeout=0.1)
        with locks.acquire(1001):
            with locks.acquire(1001, 1002):
                pass

    def test_timeout_raises_conflict(self):
        locks = AccountLockManager(timeout=0.05, retry_attempts=2)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.acquire(1001):
                holding.set()
                release.wait()

        thread = threading.Thread(target=holder)
        thread.start()
        holding.wait()
        try:
            with pytest.raises(ConcurrencyConflictError):
                with locks.acquire(1001):
                    pass
        finally:
            release.set()
            thread.join()

    def test_partial_acquire_releases_held_locks(self):
        locks = AccountLockManager(timeout=0.05, retry_attempts=1)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.acquire(1002):
                holding.set()
                release.wait()

        thread = threading.Thread(target=holder)
        thread.start()
        holding.wait()
        with pytest.raises(ConcurrencyConflictError):
            with locks.acquire(1001, 1002):
                pass
        release.set()
        thread.join()

        acquired = []

        def other():
            with locks.acquire(1001):
                acquired.append(True)

        checker = threading.Thread(target=other)
        checker.start()
        checker.join()
        assert acquired == [True]

    def test_opposite_orders_do_not_deadlock(self):
        locks = AccountLockManager(timeout=2.0)
        counter = {"value": 0}

        def worker(first, second):
            for _ in range(100):
                with locks.acquire(first, second):
                    value = counter["value"]
                    time.sleep(0)
                    counter["value"] = value + 1

        threads = [
            threading.Thread(target=worker, args=(1001, 1002)),
            threading.Thread(target=worker, args=(1002, 1001)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert counter["value"] == 200


class TestRestoreValidation:
    """restore applies the checks create applies"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.store = AccountStore(self.storage, SequenceGenerator())
        self.created = datetime(2023, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("name", ["", "  ", "x" * 51])
    def test_bad_name(self, name):
        with pytest.raises(ValidationError):
            self.store.restore(Account(1001, name, Decimal("1.00"), self.created))
        assert not self.store.exists(1001)

    @pytest.mark.parametrize("balance", [Decimal("1.239"), Decimal("-0.01")])
    def test_bad_balance(self, balance):
        with pytest.raises(ValidationError):
            self.store.restore(Account(1001, "Alice", balance, self.created))
        assert not self.store.exists(1001)

    def test_non_positive_id(self):
        with pytest.raises(ValidationError):
            self.store.restore(Account(0, "Alice", Decimal("1.00"), self.created))
