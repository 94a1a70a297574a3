"""
Tests for sequence generation

Uniqueness and ordering under concurrent callers, configured base values,
and resuming past persisted ids.
"""

import threading

from bank_ledger.sequences import Sequence, SequenceGenerator
from bank_ledger.storage import InMemoryStorage


class TestSequence:
    """Test the single counter"""

    def test_starts_at_base_value(self):
        sequence = Sequence(1001)
        assert sequence.current() == 1000
        assert sequence.next_value() == 1001
        assert sequence.next_value() == 1002
        assert sequence.current() == 1002

    def test_advance_past_only_moves_forward(self):
        sequence = Sequence(1)
        sequence.advance_past(10)
        assert sequence.next_value() == 11

        sequence.advance_past(5)
        assert sequence.next_value() == 12

    def test_concurrent_callers_never_share_a_value(self):
        sequence = Sequence(5001)
        seen = []
        lock = threading.Lock()

        def draw():
            values = [sequence.next_value() for _ in range(200)]
            with lock:
                seen.extend(values)

        threads = [threading.Thread(target=draw) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(seen) == 1600
        assert len(set(seen)) == 1600
        assert min(seen) == 5001
        assert max(seen) == 6600


class TestSequenceGenerator:
    """Test the per-table generator"""

    def test_default_base_values(self):
        sequences = SequenceGenerator()
        assert sequences.next_account_id() == 1001
        assert sequences.next_account_id() == 1002
        assert sequences.next_transaction_id() == 5001
        assert sequences.next_error_log_id() == 1

    def test_sequences_are_independent(self):
        sequences = SequenceGenerator(account_start=1, transaction_start=1)
        assert sequences.next_account_id() == 1
        assert sequences.next_transaction_id() == 1
        assert sequences.next_account_id() == 2

    def test_resume_skips_persisted_ids(self):
        storage = InMemoryStorage()
        storage.save("accounts", "1001", {"account_id": 1001})
        storage.save("accounts", "1007", {"account_id": 1007})
        storage.save("transactions", "5003", {"transaction_id": 5003})

        sequences = SequenceGenerator()
        sequences.resume(storage)

        assert sequences.next_account_id() == 1008
        assert sequences.next_transaction_id() == 5004
        assert sequences.next_error_log_id() == 1

    def test_resume_selected_tables(self):
        storage = InMemoryStorage()
        storage.save("error_logs", "4", {"log_id": 4})
        storage.save("accounts", "1500", {"account_id": 1500})

        sequences = SequenceGenerator()
        sequences.resume(storage, "error_logs")

        assert sequences.next_error_log_id() == 5
        assert sequences.next_account_id() == 1001
