"""
Tests for the transaction log
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from bank_ledger.transactions import TransactionLog, TransactionRecord, TransactionType
from bank_ledger.sequences import SequenceGenerator
from bank_ledger.storage import InMemoryStorage
from bank_ledger.errors import ValidationError


class TestTransactionRecord:
    """Test record invariants"""

    def test_transfer_requires_target(self):
        with pytest.raises(ValidationError):
            TransactionRecord(5001, 1001, TransactionType.TRANSFER, Decimal("1"), datetime.now(timezone.utc))

    @pytest.mark.parametrize("transaction_type", [TransactionType.DEPOSIT, TransactionType.WITHDRAW])
    def test_single_account_types_refuse_target(self, transaction_type):
        with pytest.raises(ValidationError):
            TransactionRecord(
                5001, 1001, transaction_type, Decimal("1"), datetime.now(timezone.utc),
                target_account_id=1002
            )

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            TransactionRecord(5001, 1001, TransactionType.DEPOSIT, Decimal("0"), datetime.now(timezone.utc))

    def test_dict_round_trip(self):
        record = TransactionRecord(
            5001, 1001, TransactionType.TRANSFER, Decimal("1000.00"),
            datetime(2023, 10, 1, 12, 0, tzinfo=timezone.utc), target_account_id=1002
        )
        data = record.to_dict()
        assert data["transaction_type"] == "TRANSFER"
        assert data["amount"] == "1000.00"
        assert TransactionRecord.from_dict(data) == record


class TestTransactionLog:
    """Test append and history queries"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.log = TransactionLog(self.storage, SequenceGenerator())

    def test_append_assigns_id_and_timestamp(self):
        before = datetime.now(timezone.utc)
        record = self.log.append(TransactionType.DEPOSIT, 1001, Decimal("2000.00"))

        assert record.id == 5001
        assert record.timestamp >= before
        assert record.target_account_id is None
        assert self.log.get(5001) == record
        assert self.log.count() == 1

    def test_get_missing(self):
        assert self.log.get(9999) is None

    def test_ids_strictly_increase(self):
        ids = [self.log.append(TransactionType.DEPOSIT, 1001, Decimal("1")).id for _ in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_for_account_includes_transfer_target(self):
        self.log.append(TransactionType.DEPOSIT, 1001, Decimal("10"))
        self.log.append(TransactionType.WITHDRAW, 1002, Decimal("5"))
        self.log.append(TransactionType.TRANSFER, 1001, Decimal("3"), target_account_id=1002)

        alice = self.log.for_account(1001)
        bob = self.log.for_account(1002)
        assert [r.transaction_type for r in alice] == [TransactionType.DEPOSIT, TransactionType.TRANSFER]
        assert [r.transaction_type for r in bob] == [TransactionType.WITHDRAW, TransactionType.TRANSFER]

        transfers_only = self.log.for_account(1002, [TransactionType.TRANSFER])
        assert len(transfers_only) == 1
        assert transfers_only[0].target_account_id == 1002

    def test_append_inside_rolled_back_unit_leaves_no_record(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.log.append(TransactionType.DEPOSIT, 1001, Decimal("10"))
                raise RuntimeError("balance update failed")
        assert self.log.count() == 0
        assert self.log.all() == []

    def test_for_account_ignores_other_accounts(self):
        self.log.append(TransactionType.DEPOSIT, 1003, Decimal("1"))
        self.log.append(TransactionType.TRANSFER, 1003, Decimal("1"), target_account_id=1004)
        assert self.log.for_account(1001) == []
        assert len(self.log.for_account(1004)) == 1
