"""
Transaction Log Module

Append-only record of completed deposits, withdrawals and transfers.
Records are immutable once appended: the log offers no update or delete.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum

from .storage import StorageInterface
from .sequences import SequenceGenerator
from .money import format_amount
from .errors import ValidationError


class TransactionType(Enum):
    """Types of ledger movements"""
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER = "TRANSFER"


@dataclass(frozen=True)
class TransactionRecord:
    """
    One completed ledger movement

    ``account_id`` is the only account for deposits and withdrawals and the
    source account for transfers; ``target_account_id`` is set for transfers
    only.
    """
    id: int
    account_id: int
    transaction_type: TransactionType
    amount: Decimal
    timestamp: datetime
    target_account_id: Optional[int] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise ValidationError("Transaction amount must be positive")

        is_transfer = self.transaction_type == TransactionType.TRANSFER
        if is_transfer and self.target_account_id is None:
            raise ValidationError("Transfer record requires a target account")
        if not is_transfer and self.target_account_id is not None:
            raise ValidationError(
                f"{self.transaction_type.value} record cannot have a target account"
            )

    def to_dict(self) -> Dict:
        return {
            "transaction_id": self.id,
            "account_id": self.account_id,
            "target_account_id": self.target_account_id,
            "transaction_type": self.transaction_type.value,
            "amount": format_amount(self.amount),
            "transaction_time": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'TransactionRecord':
        target = data.get("target_account_id")
        return cls(
            id=int(data["transaction_id"]),
            account_id=int(data["account_id"]),
            target_account_id=int(target) if target is not None else None,
            transaction_type=TransactionType(data["transaction_type"]),
            amount=Decimal(data["amount"]),
            timestamp=datetime.fromisoformat(data["transaction_time"]),
        )


class TransactionLog:
    """Append-only transaction history"""

    def __init__(self, storage: StorageInterface, sequences: SequenceGenerator):
        self.storage = storage
        self.sequences = sequences
        self.table_name = "transactions"

    def append(
        self,
        transaction_type: TransactionType,
        account_id: int,
        amount: Decimal,
        target_account_id: Optional[int] = None
    ) -> TransactionRecord:
        """
        Append a record; id and timestamp are assigned here

        Run it inside the same ``storage.atomic()`` block as the balance
        change it documents so both land together or not at all.
        """
        record = TransactionRecord(
            id=self.sequences.next_transaction_id(),
            account_id=account_id,
            target_account_id=target_account_id,
            transaction_type=transaction_type,
            amount=amount,
            timestamp=datetime.now(timezone.utc),
        )
        self.storage.insert(self.table_name, str(record.id), record.to_dict())
        return record

    def get(self, transaction_id: int) -> Optional[TransactionRecord]:
        data = self.storage.load(self.table_name, str(transaction_id))
        if data:
            return TransactionRecord.from_dict(data)
        return None

    def all(self) -> List[TransactionRecord]:
        """Every record in append order"""
        records = [TransactionRecord.from_dict(data) for data in self.storage.load_all(self.table_name)]
        records.sort(key=lambda record: record.id)
        return records

    def for_account(
        self,
        account_id: int,
        transaction_types: Optional[List[TransactionType]] = None
    ) -> List[TransactionRecord]:
        """
        Records where the account is the source or the transfer target, oldest first

        Args:
            account_id: Account whose history is wanted
            transaction_types: Keep only these types (all types if empty)
        """
        matches = {}
        for key in ("account_id", "target_account_id"):
            for data in self.storage.find(self.table_name, {key: account_id}):
                record = TransactionRecord.from_dict(data)
                matches[record.id] = record
        records = list(matches.values())
        if transaction_types:
            records = [record for record in records if record.transaction_type in transaction_types]
        records.sort(key=lambda record: (record.timestamp, record.id))
        return records

    def count(self) -> int:
        return self.storage.count(self.table_name)
