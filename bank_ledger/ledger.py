"""
Ledger Assembly

Wires storage, sequences, locks, the account store, the transaction log, the
error journal and the executor into one object.
"""

from typing import Optional

from .config import LedgerConfig, get_config
from .storage import InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
from .sequences import SequenceGenerator
from .accounts import AccountLockManager, AccountStore
from .transactions import TransactionLog
from .error_journal import ErrorJournal
from .executor import LedgerExecutor
from .logging_config import get_logger


class Ledger:
    """Single logical ledger shared by all callers of one process"""

    def __init__(
        self,
        storage: StorageInterface,
        journal_storage: StorageInterface,
        sequences: Optional[SequenceGenerator] = None,
        locks: Optional[AccountLockManager] = None
    ):
        if storage is journal_storage:
            raise ValueError("Error journal needs its own storage handle")

        self.storage = storage
        self.journal_storage = journal_storage
        self.sequences = sequences or SequenceGenerator()
        self.sequences.resume(storage, "accounts", "transactions")
        self.sequences.resume(journal_storage, "error_logs")

        self.accounts = AccountStore(storage, self.sequences, locks)
        self.transaction_log = TransactionLog(storage, self.sequences)
        self.error_journal = ErrorJournal(journal_storage, self.sequences)
        self.executor = LedgerExecutor(self.accounts, self.transaction_log, self.error_journal)
        self.logger = get_logger("ledger")

    @classmethod
    def from_config(cls, config: Optional[LedgerConfig] = None) -> 'Ledger':
        """
        Build a ledger from configuration

        The error journal gets its own connection: ``error_journal_url`` if
        set, otherwise a second connection to ``database_url``. An in-memory
        ledger gets a separate in-memory journal.
        """
        config = config or get_config()
        storage = create_storage(config.database_url)

        if config.error_journal_url:
            journal_storage = create_storage(config.error_journal_url)
        elif isinstance(storage, SQLiteStorage) and storage.db_path != ":memory:":
            journal_storage = SQLiteStorage(storage.db_path)
        else:
            journal_storage = InMemoryStorage()

        sequences = SequenceGenerator(
            account_start=config.account_id_start,
            transaction_start=config.transaction_id_start,
            error_log_start=config.error_log_id_start,
        )
        locks = AccountLockManager(
            timeout=config.lock_timeout_seconds,
            retry_attempts=config.lock_retry_attempts,
        )
        return cls(storage, journal_storage, sequences, locks)

    @classmethod
    def in_memory(cls, **sequence_starts) -> 'Ledger':
        """Fresh ledger on in-memory storage, e.g. for tests"""
        return cls(InMemoryStorage(), InMemoryStorage(), SequenceGenerator(**sequence_starts))

    # Operation shortcuts

    def create_account(self, name, initial_balance):
        return self.executor.create_account(name, initial_balance)

    def deposit(self, account_id, amount):
        return self.executor.deposit(account_id, amount)

    def withdraw(self, account_id, amount):
        return self.executor.withdraw(account_id, amount)

    def transfer(self, from_account_id, to_account_id, amount):
        return self.executor.transfer(from_account_id, to_account_id, amount)

    def balance(self, account_id):
        return self.executor.balance(account_id)

    def close(self) -> None:
        self.storage.close()
        self.journal_storage.close()
