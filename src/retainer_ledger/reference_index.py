"""Lookup structures over loaded reference data."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

import structlog

from retainer_ledger.errors import GapKind, ReferenceGapWarning
from retainer_ledger.models import (
    ZERO,
    Client,
    Lawyer,
    Matter,
    TimeEntry,
    normalize_email,
    quantize_money,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BilledEntry:
    """A time entry resolved to the client it bills and the rate it bills at."""

    entry: TimeEntry
    client_id: str
    rate: Decimal
    lawyer: Lawyer | None

    @property
    def amount(self) -> Decimal:
        return self.entry.hours * self.rate


class ReferenceIndex:
    """Lookups by lawyer id, client id, client email and matter id."""

    def __init__(
        self,
        clients: Iterable[Client],
        lawyers: Iterable[Lawyer],
        matters: Iterable[Matter],
    ) -> None:
        self._clients_by_id: dict[str, Client] = {}
        self._clients_by_email: dict[str, Client] = {}
        self._lawyers: dict[str, Lawyer] = {lawyer.lawyer_id: lawyer for lawyer in lawyers}
        self._matters: dict[str, Matter] = {matter.matter_id: matter for matter in matters}
        self._matter_clients: dict[str, str] = {
            matter_id: matter.client_id for matter_id, matter in self._matters.items()
        }
        for client in clients:
            self._add_client(client)

    def _add_client(self, client: Client) -> None:
        self._clients_by_id[client.client_id] = client
        email = normalize_email(client.email)
        if not email:
            return
        existing = self._clients_by_email.get(email)
        if existing is None or (client.is_active and not existing.is_active):
            self._clients_by_email[email] = client
        elif existing.client_id != client.client_id:
            logger.warning(
                "duplicate_client_email",
                email=email,
                kept=existing.client_id,
                ignored=client.client_id,
            )

    def with_clients(self, new_clients: Iterable[Client]) -> ReferenceIndex:
        """Return a copy of this index that also knows ``new_clients``."""
        return ReferenceIndex(
            list(self._clients_by_id.values()) + list(new_clients),
            self._lawyers.values(),
            self._matters.values(),
        )

    # === Clients ===

    @property
    def clients(self) -> list[Client]:
        return list(self._clients_by_id.values())

    def client(self, client_id: str) -> Client | None:
        return self._clients_by_id.get(client_id)

    def client_by_email(self, email: str) -> Client | None:
        return self._clients_by_email.get(normalize_email(email))

    def client_for_matter(self, matter_id: str) -> str | None:
        return self._matter_clients.get(matter_id)

    def matter(self, matter_id: str) -> Matter | None:
        return self._matters.get(matter_id)

    # === Lawyers ===

    @property
    def active_lawyers(self) -> list[Lawyer]:
        return [lawyer for lawyer in self._lawyers.values() if lawyer.is_active]

    def lawyer(self, lawyer_id: str) -> Lawyer | None:
        return self._lawyers.get(lawyer_id)

    def rate_for(self, lawyer_id: str) -> Decimal | None:
        lawyer = self._lawyers.get(lawyer_id)
        if lawyer is None:
            return None
        return quantize_money(lawyer.rate)

    def email_for(self, lawyer_id: str) -> str | None:
        lawyer = self._lawyers.get(lawyer_id)
        if lawyer is None or not lawyer.email:
            return None
        return lawyer.email

    def highest_active_rate(self) -> Decimal | None:
        rates = [quantize_money(lawyer.rate) for lawyer in self.active_lawyers]
        return max(rates) if rates else None

    # === Time entries ===

    def resolve_entries(
        self, entries: Iterable[TimeEntry]
    ) -> tuple[list[BilledEntry], list[ReferenceGapWarning]]:
        """Resolve each entry's client (via its matter) and lawyer rate.

        Entries that cannot be tied to a known client are excluded; entries
        with an unknown lawyer are kept at a zero rate. Every problem is
        returned as a gap so it shows up in the digest.
        """
        billed: list[BilledEntry] = []
        gaps: list[ReferenceGapWarning] = []

        for entry in entries:
            ref = entry.entry_ref
            client_id = self._matter_clients.get(entry.matter_id) if entry.matter_id else None

            if client_id is None:
                if entry.matter_id:
                    gaps.append(
                        ReferenceGapWarning(
                            GapKind.UNKNOWN_MATTER,
                            ref,
                            f"matter {entry.matter_id!r} not found; "
                            f"billing client {entry.client_id or '?'} from the entry",
                        )
                    )
                client_id = entry.client_id
            elif entry.client_id and entry.client_id != client_id:
                gaps.append(
                    ReferenceGapWarning(
                        GapKind.MATTER_CLIENT_MISMATCH,
                        ref,
                        f"entry names client {entry.client_id!r} but matter "
                        f"{entry.matter_id!r} belongs to {client_id!r}",
                    )
                )

            if not client_id or client_id not in self._clients_by_id:
                gaps.append(
                    ReferenceGapWarning(
                        GapKind.UNKNOWN_CLIENT,
                        ref,
                        f"client {client_id or '?'!r} not found; entry excluded",
                    )
                )
                continue

            lawyer = self._lawyers.get(entry.lawyer_id)
            if lawyer is None:
                gaps.append(
                    ReferenceGapWarning(
                        GapKind.UNKNOWN_LAWYER,
                        ref,
                        f"lawyer {entry.lawyer_id or '?'!r} not found; billed at zero",
                    )
                )
                rate = ZERO
            else:
                rate = quantize_money(lawyer.rate)

            billed.append(BilledEntry(entry=entry, client_id=client_id, rate=rate, lawyer=lawyer))

        return billed, gaps

    @staticmethod
    def assigned_lawyers(billed: Iterable[BilledEntry]) -> dict[str, Lawyer]:
        """Map each client to the lawyer who most recently logged time for them."""
        latest: dict[str, tuple[BilledEntry, Lawyer]] = {}
        for item in billed:
            if item.lawyer is None:
                continue
            current = latest.get(item.client_id)
            if current is None or item.entry.date >= current[0].entry.date:
                latest[item.client_id] = (item, item.lawyer)
        return {client_id: lawyer for client_id, (_, lawyer) in latest.items()}
