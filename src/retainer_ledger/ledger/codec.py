"""Conversion between raw ledger rows and typed records.

Rows are lists of cell strings in schema column order. Parsing errors are
raised as ``ValueError`` with a column name attached via ``CellError`` so the
loader can turn them into a ``StructuralError`` pointing at the bad cell.
"""

from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from retainer_ledger.models import (
    Client,
    ClientStatus,
    Invoice,
    InvoiceStatus,
    Lawyer,
    LowBalanceWarning,
    Matter,
    Payment,
    PaymentStatus,
    SettingRow,
    TimeEntry,
    month_key,
    quantize_money,
)

LIST_SEPARATOR = "; "

T = TypeVar("T")


class CellError(ValueError):
    """A single cell could not be parsed."""

    def __init__(self, column: str, message: str):
        super().__init__(message)
        self.column = column


def _cell(row: Sequence[str], index: int) -> str:
    if index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value).strip()


def _require(value: str, column: str) -> str:
    if not value:
        raise CellError(column, f"{column} is required")
    return value


def _decimal(value: str, column: str) -> Decimal:
    cleaned = value.replace("$", "").replace(",", "").strip()
    try:
        result = Decimal(cleaned)
    except InvalidOperation as exc:
        raise CellError(column, f"{column} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise CellError(column, f"{column} is not a finite number: {value!r}")
    return result


def _optional_decimal(value: str, column: str) -> Decimal | None:
    if not value:
        return None
    return _decimal(value, column)


def _date(value: str, column: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise CellError(column, f"{column} is not an ISO date: {value!r}") from exc


def _optional_date(value: str, column: str) -> date | None:
    if not value:
        return None
    return _date(value, column)


def _month(value: str, column: str) -> str:
    # Sheets often turn "2024-03" into a full date; either form keys the same month
    if len(value) == 7:
        return month_key(_date(f"{value}-01", column))
    return month_key(_date(value, column))


def _enum(enum_cls: Callable[[str], T], value: str, column: str) -> T:
    try:
        return enum_cls(value.upper())
    except ValueError as exc:
        raise CellError(column, f"{column} has unknown value {value!r}") from exc


def _money(value: Decimal | None) -> str:
    if value is None:
        return ""
    return f"{quantize_money(value):.2f}"


def _plain(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _iso(value: date | None) -> str:
    return value.isoformat() if value else ""


def _split(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(";") if part.strip())


# === Parsers ===


def parse_client(row: Sequence[str], row_number: int) -> Client:  # noqa: ARG001
    status_raw = _cell(row, 4)
    return Client(
        client_id=_cell(row, 0),
        email=_cell(row, 1),
        name=_cell(row, 2),
        target_balance=_optional_decimal(_cell(row, 3), "Target Balance"),
        status=(
            _enum(ClientStatus, status_raw, "Status") if status_raw else ClientStatus.ACTIVE
        ),
        last_updated=_optional_date(_cell(row, 5), "Last Updated"),
    )


def parse_payment(row: Sequence[str], row_number: int) -> Payment:  # noqa: ARG001
    amount = _decimal(_require(_cell(row, 2), "Amount"), "Amount")
    if amount <= 0:
        raise CellError("Amount", f"Amount must be positive, got {amount}")
    return Payment(
        payment_id=_cell(row, 0),
        client_email=_cell(row, 1),
        amount=quantize_money(amount),
        currency=_cell(row, 3).upper(),
        date=_date(_require(_cell(row, 4), "Date"), "Date"),
        status=_enum(PaymentStatus, _require(_cell(row, 5), "Status"), "Status"),
        payment_link=_cell(row, 6),
    )


def parse_lawyer(row: Sequence[str], row_number: int) -> Lawyer:  # noqa: ARG001
    rate_raw = _cell(row, 3)
    rate = _decimal(rate_raw, "Rate") if rate_raw else Decimal("0")
    if rate < 0:
        raise CellError("Rate", f"Rate must not be negative, got {rate}")
    return Lawyer(
        lawyer_id=_cell(row, 0),
        name=_cell(row, 1),
        email=_cell(row, 2),
        rate=rate,
        status=_cell(row, 4) or "ACTIVE",
    )


def parse_time_entry(row: Sequence[str], row_number: int) -> TimeEntry:
    hours = _decimal(_require(_cell(row, 4), "Hours"), "Hours")
    if hours <= 0:
        raise CellError("Hours", f"Hours must be positive, got {hours}")
    return TimeEntry(
        date=_date(_cell(row, 0), "Date"),
        client_id=_cell(row, 1),
        matter_id=_cell(row, 2),
        lawyer_id=_cell(row, 3),
        hours=hours,
        description=_cell(row, 5),
        row_number=row_number,
    )


def parse_matter(row: Sequence[str], row_number: int) -> Matter:  # noqa: ARG001
    return Matter(
        matter_id=_cell(row, 0),
        client_id=_cell(row, 1),
        client_name=_cell(row, 2),
        description=_cell(row, 3),
        value=_optional_decimal(_cell(row, 4), "Value"),
        status=_cell(row, 5),
        created_date=_optional_date(_cell(row, 6), "Created Date"),
        last_updated=_optional_date(_cell(row, 7), "Last Updated"),
    )


def parse_invoice(row: Sequence[str], row_number: int) -> Invoice:  # noqa: ARG001
    month = _month(_require(_cell(row, 0), "Month"), "Month")
    status_raw = _cell(row, 10)
    return Invoice(
        month=month,
        client_email=_cell(row, 1),
        client_name=_cell(row, 2),
        total_hours=_decimal(_cell(row, 3) or "0", "Total Hours"),
        total_used=quantize_money(_decimal(_cell(row, 4) or "0", "Total Used")),
        lawyers_involved=_split(_cell(row, 5)),
        matters=_split(_cell(row, 6)),
        invoice_id=_cell(row, 7),
        client_id=_require(_cell(row, 8), "Client ID"),
        invoice_date=_date(_require(_cell(row, 9), "Invoice Date"), "Invoice Date"),
        status=(
            _enum(InvoiceStatus, status_raw, "Status") if status_raw else InvoiceStatus.DRAFT
        ),
    )


def parse_warning(row: Sequence[str], row_number: int) -> LowBalanceWarning:  # noqa: ARG001
    return LowBalanceWarning(
        client_id=_cell(row, 0),
        email=_cell(row, 1),
        name=_cell(row, 2),
        balance=_decimal(_cell(row, 3) or "0", "Balance"),
        target_balance=_decimal(_cell(row, 4) or "0", "Target Balance"),
        warning_date=_date(_require(_cell(row, 5), "Last Warning Date"), "Last Warning Date"),
    )


def parse_setting(row: Sequence[str], row_number: int) -> SettingRow:  # noqa: ARG001
    return SettingRow(key=_cell(row, 0), value=_cell(row, 1), description=_cell(row, 2))


PARSERS: dict[str, Callable[[Sequence[str], int], Any]] = {
    "clients": parse_client,
    "payments": parse_payment,
    "lawyers": parse_lawyer,
    "timelogs": parse_time_entry,
    "matters": parse_matter,
    "invoices": parse_invoice,
    "lowbalance": parse_warning,
    "settings": parse_setting,
}


# === Formatters (only for tables the engine writes) ===


def format_client(client: Client) -> list[str]:
    return [
        client.client_id,
        client.email,
        client.name,
        _money(client.target_balance),
        client.status.value,
        _iso(client.last_updated),
    ]


def format_invoice(invoice: Invoice) -> list[str]:
    return [
        invoice.month,
        invoice.client_email,
        invoice.client_name,
        _plain(invoice.total_hours),
        _money(invoice.total_used),
        LIST_SEPARATOR.join(invoice.lawyers_involved),
        LIST_SEPARATOR.join(invoice.matters),
        invoice.invoice_id,
        invoice.client_id,
        _iso(invoice.invoice_date),
        invoice.status.value,
    ]


def format_warning(warning: LowBalanceWarning) -> list[str]:
    return [
        warning.client_id,
        warning.email,
        warning.name,
        _money(warning.balance),
        _money(warning.target_balance),
        _iso(warning.warning_date),
    ]
