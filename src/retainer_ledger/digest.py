"""Daily summary of a reconciliation run."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from retainer_ledger.balance import BalanceReport
from retainer_ledger.client_sync import SyncResult
from retainer_ledger.errors import DuplicateGuardSkip, ReferenceGapWarning
from retainer_ledger.invoicing import InvoiceRunResult
from retainer_ledger.low_balance import TrackerResult
from retainer_ledger.models import ZERO, BalanceState, Lawyer
from retainer_ledger.notifications import Notification, NotificationKind


@dataclass
class DailyDigest:
    """Counts and totals for one run, ready to send to the firm."""

    run_date: date
    currency: str
    payments_processed: int
    payments_total: Decimal
    clients_created: list[str]
    invoices_generated: list[str]
    invoiced_hours: Decimal
    invoiced_total: Decimal
    warnings_emitted: list[str]
    warnings_cleared: int
    total_paid: Decimal
    total_billed: Decimal
    state_counts: dict[BalanceState, int]
    data_quality: list[ReferenceGapWarning] = field(default_factory=list)
    duplicate_skips: int = 0

    @property
    def net_balance(self) -> Decimal:
        return self.total_paid - self.total_billed

    def to_dict(self) -> dict[str, object]:
        return {
            "run_date": self.run_date.isoformat(),
            "currency": self.currency,
            "payments_processed": self.payments_processed,
            "payments_total": str(self.payments_total),
            "clients_created": list(self.clients_created),
            "invoices_generated": list(self.invoices_generated),
            "invoiced_hours": str(self.invoiced_hours),
            "invoiced_total": str(self.invoiced_total),
            "warnings_emitted": list(self.warnings_emitted),
            "warnings_cleared": self.warnings_cleared,
            "total_paid": str(self.total_paid),
            "total_billed": str(self.total_billed),
            "net_balance": str(self.net_balance),
            "clients_by_state": {
                state.value: count for state, count in self.state_counts.items()
            },
            "data_quality": [gap.to_text() for gap in self.data_quality],
            "duplicate_skips": self.duplicate_skips,
        }

    def to_text(self) -> str:
        c = self.currency
        quality_text = ""
        if self.data_quality:
            quality_text = "\n\nData issues requiring attention:\n" + "\n".join(
                f"  - {gap.to_text()}" for gap in self.data_quality
            )

        warnings_text = ""
        if self.warnings_emitted:
            warnings_text = "\n  New warnings for: " + ", ".join(self.warnings_emitted)

        return f"""
Retainer Summary - {self.run_date}
{'=' * 50}

Activity:
  Payments Processed: {self.payments_processed} ({c} {self.payments_total:,.2f})
  Clients Created: {len(self.clients_created)}
  Invoices Generated: {len(self.invoices_generated)} ({self.invoiced_hours} h, {c} {self.invoiced_total:,.2f})

Balances:
  Total Paid: {c} {self.total_paid:,.2f}
  Total Billed: {c} {self.total_billed:,.2f}
  Net Retainer: {c} {self.net_balance:,.2f}
  Clients OK / Low / Overdrawn: {self.state_counts.get(BalanceState.OK, 0)} / {self.state_counts.get(BalanceState.LOW, 0)} / {self.state_counts.get(BalanceState.OVERDRAWN, 0)}

Low Balance Warnings:
  Emitted: {len(self.warnings_emitted)}  Cleared: {self.warnings_cleared}{warnings_text}

Data Quality Flags: {len(self.data_quality)}
Duplicate Skips: {self.duplicate_skips}{quality_text}
""".strip()


class DigestBuilder:
    """Pure aggregation over one run's component outputs."""

    def __init__(self, currency: str) -> None:
        self._currency = currency

    def build(
        self,
        run_date: date,
        sync: SyncResult,
        balances: BalanceReport,
        tracker: TrackerResult,
        invoices: InvoiceRunResult,
        gaps: Iterable[ReferenceGapWarning] = (),
        skips: Iterable[DuplicateGuardSkip] = (),
    ) -> DailyDigest:
        all_gaps = list(sync.gaps) + list(gaps)
        all_skips = list(sync.skips) + list(balances.skips) + list(invoices.skips) + list(skips)
        return DailyDigest(
            run_date=run_date,
            currency=self._currency,
            payments_processed=len(sync.processed_payments),
            payments_total=sum((p.amount for p in sync.processed_payments), ZERO),
            clients_created=[client.client_id for client in sync.new_clients],
            invoices_generated=[invoice.invoice_id for invoice in invoices.invoices],
            invoiced_hours=invoices.total_hours,
            invoiced_total=invoices.total_amount,
            warnings_emitted=[warning.client_id for warning in tracker.emitted],
            warnings_cleared=len(tracker.cleared),
            total_paid=balances.total_paid,
            total_billed=balances.total_billed,
            state_counts=balances.count_by_state(),
            data_quality=all_gaps,
            duplicate_skips=len(all_skips),
        )

    @staticmethod
    def to_notifications(digest: DailyDigest, lawyers: Iterable[Lawyer]) -> list[Notification]:
        """One digest message per active lawyer with an email address."""
        body = digest.to_text()
        subject = f"Daily retainer summary - {digest.run_date.isoformat()}"
        return [
            Notification(
                kind=NotificationKind.DAILY_DIGEST,
                recipient=lawyer.email,
                subject=subject,
                body=body,
                metadata={"lawyer_id": lawyer.lawyer_id},
            )
            for lawyer in lawyers
            if lawyer.is_active and lawyer.email
        ]
