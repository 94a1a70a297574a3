"""
Diagnostics and export endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse

from .deps import get_ledger
from .schemas import ErrorLogResponse
from ..config import get_config
from ..csv_io import backup_accounts, export_table
from ..ledger import Ledger


router = APIRouter()


@router.get("/error-logs", response_model=List[ErrorLogResponse])
def list_error_logs(
    procedure: Optional[str] = None,
    ledger: Ledger = Depends(get_ledger)
):
    """Error journal entries, optionally for one procedure (WITHDRAW, TRANSFER, ...)"""
    if procedure:
        entries = ledger.error_journal.for_procedure(procedure.upper())
    else:
        entries = ledger.error_journal.entries()
    return [ErrorLogResponse.from_entry(e) for e in entries]


@router.get("/export/{table}", response_class=PlainTextResponse)
def export(table: str, ledger: Ledger = Depends(get_ledger)):
    """Export accounts, transactions or error_logs as CSV"""
    return PlainTextResponse(export_table(ledger, table), media_type="text/csv")


@router.post("/backup", status_code=status.HTTP_201_CREATED)
def backup(ledger: Ledger = Depends(get_ledger)):
    """Write today's accounts backup into the configured backup directory"""
    path = backup_accounts(ledger, get_config().backup_directory)
    return {
        "file": str(path),
        "message": "Backup written successfully"
    }
