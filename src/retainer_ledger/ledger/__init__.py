"""Ledger storage: loading, change batches and the CSV store."""

from retainer_ledger.ledger.changes import LedgerChanges
from retainer_ledger.ledger.csv_store import CsvLedgerStore
from retainer_ledger.ledger.loader import (
    OPTIONAL_TABLES,
    REQUIRED_TABLES,
    LedgerLoader,
    LedgerSource,
)
from retainer_ledger.ledger.lock import RunLock

__all__ = [
    "CsvLedgerStore",
    "LedgerChanges",
    "LedgerLoader",
    "LedgerSource",
    "OPTIONAL_TABLES",
    "REQUIRED_TABLES",
    "RunLock",
]
