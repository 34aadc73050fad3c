"""Reconcile completed payments against the client set."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

import structlog

from retainer_ledger.errors import (
    DuplicateGuardSkip,
    GapKind,
    ReferenceGapWarning,
    SkipKind,
)
from retainer_ledger.models import Client, ClientStatus, Payment, normalize_email
from retainer_ledger.reference_index import ReferenceIndex
from retainer_ledger.settings_resolver import OperatingSettings

logger = structlog.get_logger(__name__)

CLIENT_ID_PREFIX = "CLI"
_CLIENT_ID_PATTERN = re.compile(rf"^{CLIENT_ID_PREFIX}(\d+)$")


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync pass.

    ``processed_payment_ids`` is the full updated set to persist; the input
    set passed to ``sync`` is never modified.
    """

    new_clients: tuple[Client, ...]
    processed_payments: tuple[Payment, ...]
    processed_payment_ids: frozenset[str]
    skips: tuple[DuplicateGuardSkip, ...] = ()
    gaps: tuple[ReferenceGapWarning, ...] = ()


def name_from_email(email: str) -> str:
    """Best-effort display name from an email's local part."""
    local = email.split("@", 1)[0]
    words = [word for word in re.split(r"[._\-+]+", local) if word]
    return " ".join(word.capitalize() for word in words) or email


def next_client_id(existing_ids: Iterable[str]) -> str:
    highest = 0
    for client_id in existing_ids:
        match = _CLIENT_ID_PATTERN.match(client_id)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{CLIENT_ID_PREFIX}{highest + 1:03d}"


class ClientSyncOrchestrator:
    """Creates clients for unseen payer emails and tracks processed payments."""

    def __init__(self, index: ReferenceIndex, settings: OperatingSettings) -> None:
        self._index = index
        self._settings = settings
        self._logger = logger.bind(component="client_sync")

    def sync(
        self,
        payments: Iterable[Payment],
        processed_ids: frozenset[str],
        today: date,
    ) -> SyncResult:
        processed = set(processed_ids)
        new_clients: dict[str, Client] = {}
        newly_processed: list[Payment] = []
        skips: list[DuplicateGuardSkip] = []
        gaps: list[ReferenceGapWarning] = []
        known_ids = [client.client_id for client in self._index.clients]

        for payment in payments:
            if not payment.is_completed:
                continue
            if payment.payment_id in processed:
                skips.append(
                    DuplicateGuardSkip(SkipKind.PAYMENT_ALREADY_PROCESSED, payment.payment_id)
                )
                continue

            email = normalize_email(payment.client_email)
            if not email:
                gaps.append(
                    ReferenceGapWarning(
                        GapKind.MISSING_EMAIL,
                        payment.payment_id,
                        "payment has no client email; not applied",
                    )
                )
                continue

            if payment.currency and payment.currency != self._settings.default_currency:
                gaps.append(
                    ReferenceGapWarning(
                        GapKind.CURRENCY_MISMATCH,
                        payment.payment_id,
                        f"paid in {payment.currency}, ledger currency is "
                        f"{self._settings.default_currency}; counted at face value",
                    )
                )

            client = self._index.client_by_email(email) or new_clients.get(email)
            if client is None:
                client = Client(
                    client_id=next_client_id(known_ids),
                    email=email,
                    name=name_from_email(email),
                    target_balance=None,
                    status=ClientStatus.ACTIVE,
                    last_updated=today,
                )
                known_ids.append(client.client_id)
                new_clients[email] = client
                self._logger.info(
                    "client_created",
                    client_id=client.client_id,
                    email=email,
                    payment_id=payment.payment_id,
                )

            processed.add(payment.payment_id)
            newly_processed.append(payment)
            self._logger.debug(
                "payment_applied",
                payment_id=payment.payment_id,
                client_id=client.client_id,
                amount=str(payment.amount),
            )

        if skips:
            self._logger.debug("payments_already_processed", count=len(skips))

        return SyncResult(
            new_clients=tuple(new_clients.values()),
            processed_payments=tuple(newly_processed),
            processed_payment_ids=frozenset(processed),
            skips=tuple(skips),
            gaps=tuple(gaps),
        )
