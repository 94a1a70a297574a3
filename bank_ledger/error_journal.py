"""
Error Journal Module

Append-only diagnostics for failed ledger operations. The journal writes
through its own storage handle, so an entry commits on its own and survives
the rollback of the operation that produced it.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List

from .storage import StorageInterface
from .sequences import SequenceGenerator
from .logging_config import get_logger, log_action


MAX_MESSAGE_LENGTH = 4000
MAX_PROCEDURE_LENGTH = 100


@dataclass(frozen=True)
class ErrorLogEntry:
    """One recorded failure"""
    id: int
    timestamp: datetime
    message: str
    procedure_name: str

    def to_dict(self) -> Dict:
        return {
            "log_id": self.id,
            "error_time": self.timestamp.isoformat(),
            "error_message": self.message,
            "procedure_name": self.procedure_name,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ErrorLogEntry':
        return cls(
            id=int(data["log_id"]),
            timestamp=datetime.fromisoformat(data["error_time"]),
            message=data["error_message"],
            procedure_name=data["procedure_name"],
        )


class ErrorJournal:
    """
    Error log committed independently of business transactions

    Give it a storage backend that is not the one the ledger's atomic units
    run on (a separate SQLite connection or a separate in-memory store).
    """

    def __init__(self, storage: StorageInterface, sequences: SequenceGenerator):
        self.storage = storage
        self.sequences = sequences
        self.table_name = "error_logs"
        self.logger = get_logger("ledger.error_journal")

    def record(self, message: str, procedure_name: str) -> ErrorLogEntry:
        """
        Append an error entry and commit it immediately

        Args:
            message: Free-text description (truncated to 4000 characters)
            procedure_name: Failing operation, e.g. "WITHDRAW" or "TRANSFER"
        """
        entry = ErrorLogEntry(
            id=self.sequences.next_error_log_id(),
            timestamp=datetime.now(timezone.utc),
            message=str(message)[:MAX_MESSAGE_LENGTH],
            procedure_name=procedure_name[:MAX_PROCEDURE_LENGTH],
        )
        with self.storage.atomic():
            self.storage.insert(self.table_name, str(entry.id), entry.to_dict())

        log_action(
            self.logger, "warning", f"Error journalled: {entry.message}",
            action="record_error", resource=f"error_log:{entry.id}",
            procedure=entry.procedure_name
        )
        return entry

    def entries(self) -> List[ErrorLogEntry]:
        """All entries in the order they were written"""
        entries = [ErrorLogEntry.from_dict(data) for data in self.storage.load_all(self.table_name)]
        entries.sort(key=lambda entry: entry.id)
        return entries

    def for_procedure(self, procedure_name: str) -> List[ErrorLogEntry]:
        entries = [
            ErrorLogEntry.from_dict(data)
            for data in self.storage.find(self.table_name, {"procedure_name": procedure_name})
        ]
        entries.sort(key=lambda entry: entry.id)
        return entries

    def count(self) -> int:
        return self.storage.count(self.table_name)
