"""
CSV Export/Import

One row per record, fields in table-declaration order, no header. Every
field is wrapped in double quotes with inner double quotes doubled, e.g.

    "1001","Alice ""Al"" Smith","5000.00","2023-10-01 09:00:00"

Import also accepts unquoted fields.
"""

import csv
import io
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Union

from .accounts import Account, AccountStore
from .errors import ValidationError
from .storage import DuplicateRecordError
from .money import format_amount, parse_amount
from .logging_config import get_logger, log_action


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

ACCOUNT_COLUMNS = ("account_id", "account_name", "balance", "created_at")
TRANSACTION_COLUMNS = (
    "transaction_id", "account_id", "target_account_id",
    "transaction_type", "amount", "transaction_time",
)
ERROR_LOG_COLUMNS = ("log_id", "error_time", "error_message", "procedure_name")

TABLE_COLUMNS = {
    "accounts": ACCOUNT_COLUMNS,
    "transactions": TRANSACTION_COLUMNS,
    "error_logs": ERROR_LOG_COLUMNS,
}

logger = get_logger("ledger.csv")


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    if isinstance(value, Decimal):
        return format_amount(value)
    return str(value)


def export_rows(rows: Iterable[Sequence[Any]]) -> str:
    """Render rows as fully quoted CSV lines"""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, doublequote=True, lineterminator="\n")
    for row in rows:
        writer.writerow([_render(value) for value in row])
    return output.getvalue()


def import_rows(text: str) -> List[List[str]]:
    """Parse text produced by ``export_rows`` back into rows of strings"""
    reader = csv.reader(io.StringIO(text), doublequote=True, strict=True)
    return [row for row in reader if row]


def parse_timestamp(value: str) -> datetime:
    """Read a 'YYYY-MM-DD HH:MM:SS' timestamp as UTC (ISO strings also accepted)"""
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def table_rows(ledger, table: str) -> List[tuple]:
    """Rows of one ledger table in declaration order"""
    if table == "accounts":
        return [
            (a.id, a.name, a.balance, a.created_at)
            for a in ledger.accounts.list_accounts()
        ]
    if table == "transactions":
        return [
            (t.id, t.account_id, t.target_account_id, t.transaction_type.value, t.amount, t.timestamp)
            for t in ledger.transaction_log.all()
        ]
    if table == "error_logs":
        return [
            (e.id, e.timestamp, e.message, e.procedure_name)
            for e in ledger.error_journal.entries()
        ]
    raise ValidationError(f"Unknown table: {table}")


def export_table(ledger, table: str) -> str:
    """Export one of accounts, transactions or error_logs"""
    rows = table_rows(ledger, table)
    log_action(
        logger, "info", f"Exported {len(rows)} rows from {table}",
        action="export", resource=f"table:{table}"
    )
    return export_rows(rows)


def import_accounts(store: AccountStore, text: str) -> int:
    """
    Load exported account rows, keeping ids, balances and creation times

    The whole file is loaded in one atomic unit: a bad row leaves the store
    as it was.

    Returns:
        Number of accounts imported
    """
    try:
        rows = import_rows(text)
    except csv.Error as e:
        raise ValidationError(f"Malformed CSV: {e}") from e

    accounts = []
    for line_no, row in enumerate(rows, start=1):
        if len(row) != len(ACCOUNT_COLUMNS):
            raise ValidationError(
                f"Line {line_no}: expected {len(ACCOUNT_COLUMNS)} fields, got {len(row)}"
            )
        account_id, name, balance, created_at = row
        try:
            accounts.append(Account(
                id=int(account_id),
                name=name,
                balance=parse_amount(balance, "balance", allow_zero=True),
                created_at=parse_timestamp(created_at),
            ))
        except ValueError as e:
            raise ValidationError(f"Line {line_no}: {e}") from e

    try:
        with store.storage.atomic():
            for account in accounts:
                store.restore(account)
    except DuplicateRecordError as e:
        raise ValidationError(f"Account {e.record_id} already exists") from e

    log_action(
        logger, "info", f"Imported {len(accounts)} accounts",
        action="import", resource="table:accounts"
    )
    return len(accounts)


def backup_accounts(ledger, directory: Union[str, Path], today: Optional[date] = None) -> Path:
    """
    Write the accounts table to ``backup_YYYYMMDD.csv`` in ``directory``

    Running it on a schedule is left to the operator (cron or similar).
    """
    today = today or datetime.now(timezone.utc).date()
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"backup_{today.strftime('%Y%m%d')}.csv"
    path.write_text(export_table(ledger, "accounts"), encoding="utf-8")
    log_action(
        logger, "info", f"Accounts backed up to {path}",
        action="backup", resource="table:accounts"
    )
    return path
