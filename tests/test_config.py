"""
Tests for configuration loading and structured logging
"""

import json
import logging

from bank_ledger.config import LedgerConfig, reload_config
from bank_ledger.logging_config import JSONFormatter, log_action, setup_logging


class TestLedgerConfig:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_DATABASE_URL", raising=False)
        config = LedgerConfig(_env_file=None)
        assert config.account_id_start == 1001
        assert config.transaction_id_start == 5001
        assert config.error_journal_url is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DATABASE_URL", "memory://")
        monkeypatch.setenv("LEDGER_LOCK_TIMEOUT_SECONDS", "0.5")
        config = reload_config()
        assert config.database_url == "memory://"
        assert config.lock_timeout_seconds == 0.5


class TestStructuredLogging:

    def test_json_formatter_includes_action_fields(self):
        logger = logging.getLogger("ledger.test")
        record = logger.makeRecord("ledger.test", logging.INFO, __name__, 0, "WITHDRAW failed", (), None)
        record.action = "withdraw"
        record.procedure = "WITHDRAW"

        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "WITHDRAW failed"
        assert entry["procedure"] == "WITHDRAW"
        assert "resource" not in entry

    def test_log_action_reaches_handler(self):
        logger = setup_logging("DEBUG", "ledger.capture", "text")
        records = []

        class Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger.addHandler(Collect())
        log_action(logger, "info", "Account created: 1001", action="create_account",
                   resource="account:1001", extra={"name": "Alice"})

        assert records[0].resource == "account:1001"
        assert records[0].extra == {"name": "Alice"}

    def test_disabled_level_is_skipped(self):
        logger = setup_logging("ERROR", "ledger.quiet")
        records = []

        class Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger.addHandler(Collect())
        log_action(logger, "info", "not emitted")
        assert records == []
