"""Reconciliation run - coordinates one pass over the ledgers.

A run:
1. Takes the advisory run lock (a held lock means another run is active,
   and this one is skipped)
2. Loads a complete ledger snapshot (any structural problem aborts here)
3. Syncs clients, computes balances, tracks warnings and builds invoices,
   all in memory
4. Applies every ledger change as one batch
5. Dispatches notifications; failures are logged and never undo step 4

Usage:
    store = CsvLedgerStore(Path("ledger"))
    engine = RetainerEngine(store)
    result = engine.run()
    print(result.digest.to_text())
"""

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Protocol

import structlog

from retainer_ledger.balance import BalanceEngine, TargetPolicy
from retainer_ledger.client_sync import ClientSyncOrchestrator
from retainer_ledger.config import EngineSettings, get_settings
from retainer_ledger.digest import DailyDigest, DigestBuilder
from retainer_ledger.errors import OpenMonthError, RunLockedError
from retainer_ledger.invoicing import InvoiceGenerator, billing_months
from retainer_ledger.ledger.changes import LedgerChanges
from retainer_ledger.ledger.loader import LedgerLoader, LedgerSource
from retainer_ledger.ledger.lock import RunLock
from retainer_ledger.low_balance import LowBalanceTracker
from retainer_ledger.models import month_key
from retainer_ledger.notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationSink,
    dispatch_all,
)
from retainer_ledger.reference_index import ReferenceIndex
from retainer_ledger.settings_resolver import OperatingSettings, resolve_settings

logger = structlog.get_logger(__name__)


class LedgerStore(LedgerSource, Protocol):
    """A ledger source that can also take a change batch and hand out a run lock."""

    def apply(self, changes: LedgerChanges) -> None:
        ...

    def lock(self, filename: str = ...) -> RunLock:
        ...


@dataclass
class RunPlan:
    """Everything a run decided, before anything is written or sent."""

    settings: OperatingSettings
    changes: LedgerChanges
    digest: DailyDigest
    alerts: list[Notification] = field(default_factory=list)
    digest_messages: list[Notification] = field(default_factory=list)

    @property
    def notifications(self) -> list[Notification]:
        return self.alerts + self.digest_messages


@dataclass
class RunResult:
    run_date: date
    skipped: bool = False
    dry_run: bool = False
    plan: RunPlan | None = None
    notifications_sent: int = 0
    dispatch_failures: int = 0

    @property
    def digest(self) -> DailyDigest | None:
        return self.plan.digest if self.plan else None


class RetainerEngine:
    """Runs the reconciliation pass against a ledger store."""

    def __init__(
        self,
        store: LedgerStore,
        sink: NotificationSink | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self._store = store
        self._sink = sink or LoggingNotificationSink()
        self._settings = settings or get_settings()
        self._logger = logger.bind(component="retainer_engine")

    def run(
        self,
        today: date | None = None,
        invoice_month: str | None = None,
        dry_run: bool = False,
    ) -> RunResult:
        run_date = today or date.today()
        lock = self._store.lock(self._settings.lock_filename)
        try:
            lock.acquire()
        except RunLockedError as exc:
            self._logger.warning("run_skipped_locked", reason=str(exc))
            return RunResult(run_date=run_date, skipped=True, dry_run=dry_run)

        try:
            plan = self.plan(run_date, invoice_month=invoice_month)
            if not dry_run:
                self._store.apply(plan.changes)
        finally:
            lock.release()

        result = RunResult(run_date=run_date, dry_run=dry_run, plan=plan)
        if dry_run:
            self._logger.info("dry_run_complete", notifications=len(plan.notifications))
            return result

        if not plan.settings.email_notifications:
            self._logger.info("notifications_disabled", suppressed=len(plan.notifications))
            return result

        report = dispatch_all(self._sink, plan.notifications)
        result.notifications_sent = report.sent
        result.dispatch_failures = len(report.failures)
        self._logger.info(
            "run_complete",
            run_date=run_date.isoformat(),
            notifications_sent=report.sent,
            dispatch_failures=len(report.failures),
        )
        return result

    def plan(self, today: date, invoice_month: str | None = None) -> RunPlan:
        """Compute a run without touching the ledger or sending anything."""
        if invoice_month and invoice_month >= month_key(today):
            raise OpenMonthError(invoice_month, month_key(today))

        snapshot = LedgerLoader(self._store).load()
        settings = resolve_settings(snapshot.settings)

        index = ReferenceIndex(snapshot.clients, snapshot.lawyers, snapshot.matters)
        sync = ClientSyncOrchestrator(index, settings).sync(
            snapshot.payments, snapshot.processed_payment_ids, today
        )
        index = index.with_clients(sync.new_clients)

        billed, gaps = index.resolve_entries(snapshot.time_entries)
        for gap in gaps:
            self._logger.warning("reference_gap", kind=gap.kind.value, record=gap.record_id)

        balances = BalanceEngine(
            index,
            settings,
            policy=TargetPolicy(self._settings.default_target_policy),
            multiplier=self._settings.default_target_multiplier,
        ).compute(snapshot.payments, billed)

        tracker = LowBalanceTracker(settings, index.assigned_lawyers(billed)).evaluate(
            balances, snapshot.warnings, today
        )

        if invoice_month:
            months = [invoice_month]
        elif settings.auto_generate_invoices:
            months = billing_months(today, settings.invoice_day, billed)
        else:
            months = []
        invoices = InvoiceGenerator(index).generate(billed, snapshot.invoices, months, today)

        builder = DigestBuilder(settings.default_currency)
        digest = builder.build(today, sync, balances, tracker, invoices, gaps=gaps)

        clients = tuple(replace(client, last_updated=today) for client in index.clients)
        warnings = tracker.warnings if tracker.warnings != tuple(snapshot.warnings) else None
        processed = (
            sync.processed_payment_ids
            if sync.processed_payment_ids != snapshot.processed_payment_ids
            else None
        )
        changes = LedgerChanges(
            clients=clients,
            new_invoices=invoices.invoices,
            warnings=warnings,
            processed_payment_ids=processed,
        )

        return RunPlan(
            settings=settings,
            changes=changes,
            digest=digest,
            alerts=list(tracker.notifications),
            digest_messages=builder.to_notifications(digest, index.active_lawyers),
        )
