"""
Sequence Generation Module

Process-wide identifier sources for accounts, transactions and error log
entries. Each sequence hands out strictly increasing integers and never the
same value twice, no matter how many threads draw from it.
"""

import threading
from typing import Dict

from .storage import StorageInterface


class Sequence:
    """Thread-safe strictly increasing counter"""

    def __init__(self, start: int = 1):
        self.start = start
        self._next = start
        self._lock = threading.Lock()

    def next_value(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def current(self) -> int:
        """Last value handed out (start - 1 if none yet)"""
        with self._lock:
            return self._next - 1

    def advance_past(self, value: int) -> None:
        """Make sure the next value handed out is greater than value"""
        with self._lock:
            if value >= self._next:
                self._next = value + 1


class SequenceGenerator:
    """
    Identifier sources for the ledger tables

    Account ids start at 1001 and transaction ids at 5001 unless configured
    otherwise.
    """

    TABLES = {
        "accounts": "account_id",
        "transactions": "transaction_id",
        "error_logs": "log_id",
    }

    def __init__(
        self,
        account_start: int = 1001,
        transaction_start: int = 5001,
        error_log_start: int = 1
    ):
        self._sequences: Dict[str, Sequence] = {
            "accounts": Sequence(account_start),
            "transactions": Sequence(transaction_start),
            "error_logs": Sequence(error_log_start),
        }

    def next_account_id(self) -> int:
        return self._sequences["accounts"].next_value()

    def next_transaction_id(self) -> int:
        return self._sequences["transactions"].next_value()

    def next_error_log_id(self) -> int:
        return self._sequences["error_logs"].next_value()

    def sequence(self, table: str) -> Sequence:
        return self._sequences[table]

    def resume(self, storage: StorageInterface, *tables: str) -> None:
        """
        Advance sequences past ids already persisted in storage

        Args:
            storage: Backend holding previously written records
            tables: Tables to scan (defaults to all ledger tables)
        """
        for table in tables or self.TABLES:
            key = self.TABLES[table]
            ids = [int(record[key]) for record in storage.load_all(table) if key in record]
            if ids:
                self._sequences[table].advance_past(max(ids))
