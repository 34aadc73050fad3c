"""Monthly invoice generation.

One DRAFT invoice per (client, calendar month). A (client, month) pair that
already has an invoice is never invoiced again, so re-running a month is a
no-op. Amounts use each lawyer's rate at generation time.
"""

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import structlog

from retainer_ledger.errors import DuplicateGuardSkip, SkipKind
from retainer_ledger.models import (
    ZERO,
    Invoice,
    InvoiceStatus,
    month_key,
    quantize_money,
)
from retainer_ledger.reference_index import BilledEntry, ReferenceIndex

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class InvoiceRunResult:
    invoices: tuple[Invoice, ...]
    skips: tuple[DuplicateGuardSkip, ...]
    months: tuple[str, ...]

    @property
    def total_hours(self) -> Decimal:
        return sum((invoice.total_hours for invoice in self.invoices), ZERO)

    @property
    def total_amount(self) -> Decimal:
        return sum((invoice.total_used for invoice in self.invoices), ZERO)


def invoice_id_for(client_id: str, month: str) -> str:
    return f"INV-{month.replace('-', '')}-{client_id}"


def previous_month(day: date) -> str:
    if day.month == 1:
        return f"{day.year - 1:04d}-12"
    return f"{day.year:04d}-{day.month - 1:02d}"


def billing_months(today: date, invoice_day: int, billed: Iterable[BilledEntry]) -> list[str]:
    """Closed months with time logged that are due for invoicing on ``today``.

    The month just ended becomes due on the invoice day (clamped to the
    length of the current month); older months are always due, so a missed
    invoice day is caught up on the next run.
    """
    current = month_key(today)
    last = previous_month(today)
    last_day = calendar.monthrange(today.year, today.month)[1]
    last_month_due = today.day >= min(invoice_day, last_day)

    months = {month_key(item.entry.date) for item in billed}
    due = [
        month
        for month in months
        if month < current and (month != last or last_month_due)
    ]
    return sorted(due)


class InvoiceGenerator:
    def __init__(self, index: ReferenceIndex) -> None:
        self._index = index
        self._logger = logger.bind(component="invoice_generator")

    def generate(
        self,
        billed: Iterable[BilledEntry],
        existing: Iterable[Invoice],
        months: Iterable[str],
        today: date,
    ) -> InvoiceRunResult:
        """Create invoices for ``months`` that do not have one yet."""
        wanted = set(months)
        invoiced = {invoice.key for invoice in existing}

        groups: dict[tuple[str, str], list[BilledEntry]] = {}
        for item in billed:
            month = month_key(item.entry.date)
            if month not in wanted:
                continue
            groups.setdefault((item.client_id, month), []).append(item)

        invoices: list[Invoice] = []
        skips: list[DuplicateGuardSkip] = []

        for client_id, month in sorted(groups):
            if (client_id, month) in invoiced:
                skips.append(DuplicateGuardSkip(SkipKind.INVOICE_EXISTS, f"{client_id}:{month}"))
                self._logger.debug("invoice_exists", client_id=client_id, month=month)
                continue

            invoice = self._build_invoice(client_id, month, groups[(client_id, month)], today)
            invoiced.add(invoice.key)
            invoices.append(invoice)
            self._logger.info(
                "invoice_created",
                invoice_id=invoice.invoice_id,
                client_id=client_id,
                month=month,
                hours=str(invoice.total_hours),
                amount=str(invoice.total_used),
            )

        return InvoiceRunResult(
            invoices=tuple(invoices),
            skips=tuple(skips),
            months=tuple(sorted(wanted)),
        )

    def _build_invoice(
        self,
        client_id: str,
        month: str,
        items: list[BilledEntry],
        today: date,
    ) -> Invoice:
        client = self._index.client(client_id)
        hours = sum((item.entry.hours for item in items), ZERO)
        amount = quantize_money(sum((item.amount for item in items), ZERO))

        lawyer_ids = sorted({item.entry.lawyer_id for item in items if item.entry.lawyer_id})
        lawyers = []
        for lawyer_id in lawyer_ids:
            lawyer = self._index.lawyer(lawyer_id)
            lawyers.append(lawyer.name if lawyer and lawyer.name else lawyer_id)

        matter_ids = sorted({item.entry.matter_id for item in items if item.entry.matter_id})
        matters = []
        for matter_id in matter_ids:
            matter = self._index.matter(matter_id)
            matters.append(matter.description if matter and matter.description else matter_id)

        return Invoice(
            month=month,
            client_id=client_id,
            client_email=client.email if client else "",
            client_name=client.name if client else "",
            total_hours=hours,
            total_used=amount,
            invoice_id=invoice_id_for(client_id, month),
            invoice_date=today,
            lawyers_involved=tuple(lawyers),
            matters=tuple(matters),
            status=InvoiceStatus.DRAFT,
        )
