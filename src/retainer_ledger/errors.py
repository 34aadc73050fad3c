"""Error kinds raised or recorded during a reconciliation run.

Fatal problems are exceptions. Non-fatal conditions (reference gaps and
idempotent skips) are plain records collected on the run result so the
digest can report them.
"""

from dataclasses import dataclass
from enum import Enum


class RetainerLedgerError(Exception):
    """Base exception for retainer ledger errors."""


class StructuralError(RetainerLedgerError):
    """A required ledger is missing, has the wrong header, or holds an unreadable cell."""

    def __init__(
        self,
        message: str,
        table: str | None = None,
        row: int | None = None,
        column: str | None = None,
    ):
        super().__init__(message)
        self.table = table
        self.row = row
        self.column = column


class NotificationDispatchFailure(RetainerLedgerError):
    """A notification sink could not hand off a message."""

    def __init__(self, message: str, recipient: str | None = None):
        super().__init__(message)
        self.recipient = recipient


class RunLockedError(RetainerLedgerError):
    """Another reconciliation run holds the advisory lock."""

    pass


class OpenMonthError(RetainerLedgerError):
    """Invoicing was forced for a month that has not ended yet."""

    def __init__(self, month: str, current_month: str):
        super().__init__(
            f"Month {month} is still open in {current_month}; only past months can be invoiced"
        )
        self.month = month


class GapKind(str, Enum):
    """Kinds of data-quality gaps surfaced in the digest."""

    UNKNOWN_LAWYER = "unknown_lawyer"
    UNKNOWN_MATTER = "unknown_matter"
    UNKNOWN_CLIENT = "unknown_client"
    MATTER_CLIENT_MISMATCH = "matter_client_mismatch"
    MISSING_EMAIL = "missing_email"
    CURRENCY_MISMATCH = "currency_mismatch"


@dataclass(frozen=True)
class ReferenceGapWarning:
    """A record that references data the ledgers do not contain."""

    kind: GapKind
    record_id: str
    message: str

    def to_text(self) -> str:
        return f"[{self.kind.value}] {self.record_id}: {self.message}"


class SkipKind(str, Enum):
    """Operations skipped because they were already applied."""

    PAYMENT_ALREADY_PROCESSED = "payment_already_processed"
    DUPLICATE_PAYMENT_ROW = "duplicate_payment_row"
    INVOICE_EXISTS = "invoice_exists"


@dataclass(frozen=True)
class DuplicateGuardSkip:
    """An idempotent no-op: the operation had already been applied."""

    kind: SkipKind
    key: str
