"""Per-client retainer balances.

balance = total completed payments - total billed time (hours x lawyer rate)

All arithmetic is ``Decimal``. Rates are rounded to cents before being
multiplied by unrounded hours; the per-client totals are rounded to cents
once, at the end, so repeated runs always reproduce the same figures.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

import structlog

from retainer_ledger.errors import DuplicateGuardSkip, SkipKind
from retainer_ledger.models import (
    ZERO,
    BalanceState,
    Client,
    Payment,
    quantize_money,
)
from retainer_ledger.reference_index import BilledEntry, ReferenceIndex
from retainer_ledger.settings_resolver import OperatingSettings

logger = structlog.get_logger(__name__)


class TargetPolicy(str, Enum):
    """How to pick a target balance for clients that have none set."""

    HIGHEST_RATE = "highest_rate"  # highest active lawyer rate x multiplier
    THRESHOLD = "threshold"  # the LOW_BALANCE_THRESHOLD setting


@dataclass(frozen=True)
class ClientBalance:
    """Computed retainer position for one client."""

    client: Client
    total_paid: Decimal
    total_billed: Decimal
    target: Decimal
    target_is_default: bool
    hours: Decimal = ZERO
    payment_count: int = 0

    @property
    def client_id(self) -> str:
        return self.client.client_id

    @property
    def balance(self) -> Decimal:
        return self.total_paid - self.total_billed

    @property
    def state(self) -> BalanceState:
        return classify_balance(self.balance, self.target)

    @property
    def top_up_amount(self) -> Decimal:
        """Amount needed to bring the balance back up to target."""
        return max(self.target - self.balance, ZERO)


@dataclass
class BalanceReport:
    """Balances for every client plus the skips hit while computing them."""

    balances: dict[str, ClientBalance] = field(default_factory=dict)
    skips: list[DuplicateGuardSkip] = field(default_factory=list)

    def get(self, client_id: str) -> ClientBalance | None:
        return self.balances.get(client_id)

    @property
    def total_paid(self) -> Decimal:
        return sum((b.total_paid for b in self.balances.values()), ZERO)

    @property
    def total_billed(self) -> Decimal:
        return sum((b.total_billed for b in self.balances.values()), ZERO)

    @property
    def net_balance(self) -> Decimal:
        return self.total_paid - self.total_billed

    def count_by_state(self) -> dict[BalanceState, int]:
        counts = {state: 0 for state in BalanceState}
        for balance in self.balances.values():
            counts[balance.state] += 1
        return counts


def classify_balance(balance: Decimal, target: Decimal) -> BalanceState:
    if balance < 0:
        return BalanceState.OVERDRAWN
    if balance < target:
        return BalanceState.LOW
    return BalanceState.OK


class BalanceEngine:
    """Computes authoritative client balances from payments and billed time."""

    def __init__(
        self,
        index: ReferenceIndex,
        settings: OperatingSettings,
        policy: TargetPolicy = TargetPolicy.HIGHEST_RATE,
        multiplier: Decimal = Decimal("1"),
    ) -> None:
        self._index = index
        self._settings = settings
        self._policy = policy
        self._multiplier = multiplier
        self._logger = logger.bind(component="balance_engine")

    def default_target(self) -> Decimal:
        """Target balance for clients without an explicit one."""
        if self._policy is TargetPolicy.HIGHEST_RATE:
            highest = self._index.highest_active_rate()
            if highest is not None:
                return quantize_money(highest * self._multiplier)
            self._logger.warning("no_active_lawyers_for_default_target")
        return quantize_money(self._settings.low_balance_threshold)

    def target_for(self, client: Client, default: Decimal) -> tuple[Decimal, bool]:
        if client.target_balance is None:
            return default, True
        return quantize_money(client.target_balance), False

    def compute(
        self,
        payments: Iterable[Payment],
        billed: Iterable[BilledEntry],
    ) -> BalanceReport:
        report = BalanceReport()
        paid: dict[str, Decimal] = {}
        payment_counts: dict[str, int] = {}
        billed_amounts: dict[str, Decimal] = {}
        hours: dict[str, Decimal] = {}
        counted_ids: set[str] = set()

        for payment in payments:
            if not payment.is_completed:
                continue
            if payment.payment_id in counted_ids:
                report.skips.append(
                    DuplicateGuardSkip(SkipKind.DUPLICATE_PAYMENT_ROW, payment.payment_id)
                )
                self._logger.debug("duplicate_payment_row", payment_id=payment.payment_id)
                continue
            client = self._index.client_by_email(payment.client_email)
            if client is None:
                continue
            counted_ids.add(payment.payment_id)
            paid[client.client_id] = paid.get(client.client_id, ZERO) + payment.amount
            payment_counts[client.client_id] = payment_counts.get(client.client_id, 0) + 1

        for item in billed:
            billed_amounts[item.client_id] = billed_amounts.get(item.client_id, ZERO) + item.amount
            hours[item.client_id] = hours.get(item.client_id, ZERO) + item.entry.hours

        default = self.default_target()
        for client in sorted(self._index.clients, key=lambda c: c.client_id):
            target, is_default = self.target_for(client, default)
            report.balances[client.client_id] = ClientBalance(
                client=client,
                total_paid=quantize_money(paid.get(client.client_id, ZERO)),
                total_billed=quantize_money(billed_amounts.get(client.client_id, ZERO)),
                target=target,
                target_is_default=is_default,
                hours=hours.get(client.client_id, ZERO),
                payment_count=payment_counts.get(client.client_id, 0),
            )

        self._logger.info(
            "balances_computed",
            clients=len(report.balances),
            total_paid=str(report.total_paid),
            total_billed=str(report.total_billed),
            default_target=str(default),
        )
        return report
