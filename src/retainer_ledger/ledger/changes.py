"""Batch of ledger mutations produced by one reconciliation run."""

from dataclasses import dataclass

from retainer_ledger.models import Client, Invoice, LowBalanceWarning


@dataclass(frozen=True)
class LedgerChanges:
    """Everything a run writes back, applied together after all computation.

    ``clients`` and ``warnings`` replace their tables wholesale when set;
    ``new_invoices`` are appended to the invoice ledger.
    """

    clients: tuple[Client, ...] | None = None
    new_invoices: tuple[Invoice, ...] = ()
    warnings: tuple[LowBalanceWarning, ...] | None = None
    processed_payment_ids: frozenset[str] | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.clients is None
            and not self.new_invoices
            and self.warnings is None
            and self.processed_payment_ids is None
        )
