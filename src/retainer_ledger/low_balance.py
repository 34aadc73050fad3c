"""Edge-triggered low-balance warnings.

A client gets one warning when their balance drops below target. While the
warning row exists no further alerts go out, however many runs the balance
stays low. Once the balance is back at or above target the row is cleared,
which re-arms the alert for the next drop.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

import structlog

from retainer_ledger.balance import BalanceReport, ClientBalance
from retainer_ledger.models import Lawyer, LowBalanceWarning
from retainer_ledger.notifications import (
    Notification,
    NotificationKind,
    build_payment_link,
)
from retainer_ledger.settings_resolver import OperatingSettings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TrackerResult:
    """Updated warning ledger plus what changed in this run."""

    warnings: tuple[LowBalanceWarning, ...]
    emitted: tuple[LowBalanceWarning, ...]
    cleared: tuple[str, ...]
    notifications: tuple[Notification, ...]


class LowBalanceTracker:
    def __init__(
        self,
        settings: OperatingSettings,
        assigned_lawyers: dict[str, Lawyer] | None = None,
    ) -> None:
        self._settings = settings
        self._assigned_lawyers = assigned_lawyers or {}
        self._logger = logger.bind(component="low_balance_tracker")

    def evaluate(
        self,
        report: BalanceReport,
        existing: Iterable[LowBalanceWarning],
        today: date,
    ) -> TrackerResult:
        active: dict[str, LowBalanceWarning] = {}
        for warning in existing:
            if warning.client_id in active:
                self._logger.warning("duplicate_warning_row_dropped", client_id=warning.client_id)
                continue
            active[warning.client_id] = warning

        updated: dict[str, LowBalanceWarning] = {}
        emitted: list[LowBalanceWarning] = []
        cleared: list[str] = []
        notifications: list[Notification] = []

        # Rows for clients we have no balance for are carried over untouched
        for client_id, warning in active.items():
            if report.get(client_id) is None:
                updated[client_id] = warning

        for client_id, position in report.balances.items():
            current = active.get(client_id)

            if not position.client.is_active:
                if current is not None:
                    updated[client_id] = current
                continue

            if not position.state.is_below_target:
                if current is not None:
                    cleared.append(client_id)
                    self._logger.info("low_balance_cleared", client_id=client_id)
                continue

            if current is not None:
                updated[client_id] = LowBalanceWarning(
                    client_id=client_id,
                    email=position.client.email,
                    name=position.client.name,
                    balance=position.balance,
                    target_balance=position.target,
                    warning_date=current.warning_date,
                )
                continue

            warning = LowBalanceWarning(
                client_id=client_id,
                email=position.client.email,
                name=position.client.name,
                balance=position.balance,
                target_balance=position.target,
                warning_date=today,
            )
            updated[client_id] = warning
            emitted.append(warning)
            self._logger.info(
                "low_balance_warning",
                client_id=client_id,
                state=position.state.value,
                balance=str(position.balance),
                target=str(position.target),
            )
            if position.client.email:
                notifications.append(self._build_alert(position))
            else:
                self._logger.warning("low_balance_no_recipient", client_id=client_id)

        return TrackerResult(
            warnings=tuple(updated[key] for key in sorted(updated)),
            emitted=tuple(emitted),
            cleared=tuple(cleared),
            notifications=tuple(notifications),
        )

    def _build_alert(self, position: ClientBalance) -> Notification:
        client = position.client
        currency = self._settings.default_currency
        lawyer = self._assigned_lawyers.get(client.client_id)
        cc = (lawyer.email,) if lawyer and lawyer.email else ()
        link = build_payment_link(
            self._settings.base_payment_url, client.email, position.top_up_amount
        )

        lines = [
            f"Hello {client.name},",
            "",
            "Your retainer balance has dropped below its target.",
            "",
            f"  Current balance: {currency} {position.balance:,.2f}",
            f"  Target balance:  {currency} {position.target:,.2f}",
            f"  Top-up needed:   {currency} {position.top_up_amount:,.2f}",
        ]
        if link:
            lines += ["", f"You can top up your retainer here: {link}"]
        lines += ["", "Thank you."]

        return Notification(
            kind=NotificationKind.LOW_BALANCE,
            recipient=client.email,
            cc=cc,
            subject=f"Low retainer balance for {client.name}",
            body="\n".join(lines),
            metadata={
                "client_id": client.client_id,
                "state": position.state.value,
                "payment_link": link,
            },
        )
