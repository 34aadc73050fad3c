"""Retainer Ledger - prepaid legal retainer reconciliation and billing engine."""

__version__ = "0.1.0"

from retainer_ledger.balance import BalanceEngine, BalanceReport, ClientBalance, TargetPolicy
from retainer_ledger.client_sync import ClientSyncOrchestrator, SyncResult
from retainer_ledger.config import configure_logging, get_settings
from retainer_ledger.digest import DailyDigest, DigestBuilder
from retainer_ledger.engine import RetainerEngine, RunPlan, RunResult
from retainer_ledger.errors import (
    DuplicateGuardSkip,
    NotificationDispatchFailure,
    ReferenceGapWarning,
    RetainerLedgerError,
    RunLockedError,
    StructuralError,
)
from retainer_ledger.invoicing import InvoiceGenerator, InvoiceRunResult
from retainer_ledger.ledger import CsvLedgerStore, LedgerChanges, LedgerLoader
from retainer_ledger.low_balance import LowBalanceTracker, TrackerResult
from retainer_ledger.reference_index import ReferenceIndex
from retainer_ledger.settings_resolver import OperatingSettings, SettingKey, resolve_settings

__all__ = [
    # Version
    "__version__",
    # Engine
    "RetainerEngine",
    "RunPlan",
    "RunResult",
    # Components
    "OperatingSettings",
    "SettingKey",
    "resolve_settings",
    "LedgerLoader",
    "ReferenceIndex",
    "BalanceEngine",
    "BalanceReport",
    "ClientBalance",
    "TargetPolicy",
    "ClientSyncOrchestrator",
    "SyncResult",
    "LowBalanceTracker",
    "TrackerResult",
    "InvoiceGenerator",
    "InvoiceRunResult",
    "DigestBuilder",
    "DailyDigest",
    # Storage
    "CsvLedgerStore",
    "LedgerChanges",
    # Errors
    "RetainerLedgerError",
    "StructuralError",
    "NotificationDispatchFailure",
    "RunLockedError",
    "ReferenceGapWarning",
    "DuplicateGuardSkip",
    # Config
    "get_settings",
    "configure_logging",
]
