"""Typed ledger records."""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize_money(amount: Decimal) -> Decimal:
    """Round a monetary amount to the ledger's 2-decimal precision."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def month_key(day: date) -> str:
    """Return the billing period key (``YYYY-MM``) for a date."""
    return f"{day.year:04d}-{day.month:02d}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class ClientStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


class PaymentStatus(str, Enum):
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    FAILED = "FAILED"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"


class BalanceState(str, Enum):
    """Classification of a client balance against its target."""

    OK = "OK"
    LOW = "LOW"
    OVERDRAWN = "OVERDRAWN"

    @property
    def is_below_target(self) -> bool:
        return self is not BalanceState.OK


@dataclass(frozen=True)
class Client:
    client_id: str
    email: str
    name: str
    target_balance: Decimal | None = None
    status: ClientStatus = ClientStatus.ACTIVE
    last_updated: date | None = None

    @property
    def is_active(self) -> bool:
        return self.status is ClientStatus.ACTIVE


@dataclass(frozen=True)
class Payment:
    payment_id: str
    client_email: str
    amount: Decimal
    currency: str
    date: date
    status: PaymentStatus
    payment_link: str = ""

    @property
    def is_completed(self) -> bool:
        return self.status is PaymentStatus.COMPLETED


@dataclass(frozen=True)
class TimeEntry:
    date: date
    client_id: str
    matter_id: str
    lawyer_id: str
    hours: Decimal
    description: str = ""
    row_number: int = 0

    @property
    def entry_ref(self) -> str:
        """Stable reference used when reporting problems with this entry."""
        return f"timelogs:{self.row_number}"


@dataclass(frozen=True)
class Lawyer:
    lawyer_id: str
    name: str
    email: str
    rate: Decimal
    status: str = "ACTIVE"

    @property
    def is_active(self) -> bool:
        return self.status.strip().upper() == "ACTIVE"


@dataclass(frozen=True)
class Matter:
    matter_id: str
    client_id: str
    client_name: str = ""
    description: str = ""
    value: Decimal | None = None
    status: str = ""
    created_date: date | None = None
    last_updated: date | None = None


@dataclass(frozen=True)
class Invoice:
    month: str
    client_id: str
    client_email: str
    client_name: str
    total_hours: Decimal
    total_used: Decimal
    invoice_id: str
    invoice_date: date
    lawyers_involved: tuple[str, ...] = ()
    matters: tuple[str, ...] = ()
    status: InvoiceStatus = InvoiceStatus.DRAFT

    @property
    def key(self) -> tuple[str, str]:
        return (self.client_id, self.month)


@dataclass(frozen=True)
class LowBalanceWarning:
    client_id: str
    email: str
    name: str
    balance: Decimal
    target_balance: Decimal
    warning_date: date


@dataclass(frozen=True)
class SettingRow:
    key: str
    value: str
    description: str = ""


@dataclass
class LedgerSnapshot:
    """Complete, typed view of every ledger at the start of a run."""

    clients: list[Client] = field(default_factory=list)
    payments: list[Payment] = field(default_factory=list)
    time_entries: list[TimeEntry] = field(default_factory=list)
    lawyers: list[Lawyer] = field(default_factory=list)
    matters: list[Matter] = field(default_factory=list)
    invoices: list[Invoice] = field(default_factory=list)
    warnings: list[LowBalanceWarning] = field(default_factory=list)
    settings: list[SettingRow] = field(default_factory=list)
    processed_payment_ids: frozenset[str] = frozenset()
