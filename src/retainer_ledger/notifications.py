"""Outbound notifications.

The engine never delivers email itself. It hands ``Notification`` objects to
a sink; sinks raise ``NotificationDispatchFailure`` when the hand-off fails
and retrying is left to whatever sits behind the sink.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from urllib.parse import urlencode

import httpx
import structlog

from retainer_ledger.config import get_settings
from retainer_ledger.errors import NotificationDispatchFailure

logger = structlog.get_logger(__name__)


class NotificationKind(str, Enum):
    LOW_BALANCE = "low_balance"
    DAILY_DIGEST = "daily_digest"


@dataclass(frozen=True)
class Notification:
    """A message ready for delivery."""

    kind: NotificationKind
    recipient: str
    subject: str
    body: str
    cc: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "to": self.recipient,
            "cc": list(self.cc),
            "subject": self.subject,
            "body": self.body,
            "metadata": self.metadata,
        }


class NotificationSink(Protocol):
    def send(self, notification: Notification) -> None:
        ...


def build_payment_link(base_url: str | None, email: str, amount: Decimal) -> str | None:
    """Prefilled top-up link for a client, or None if no base URL is configured."""
    if not base_url:
        return None
    separator = "&" if "?" in base_url else "?"
    query = urlencode({"email": email, "amount": f"{amount:.2f}"})
    return f"{base_url}{separator}{query}"


class LoggingNotificationSink:
    """Writes notifications to the structured log instead of delivering them."""

    def __init__(self) -> None:
        self._logger = logger.bind(component="logging_sink")
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        self._logger.info(
            "notification",
            kind=notification.kind.value,
            to=notification.recipient,
            cc=list(notification.cc),
            subject=notification.subject,
        )


class WebhookNotificationSink:
    """Posts notifications as JSON to a mail relay webhook."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        settings = get_settings()
        resolved_url = url or settings.notify_webhook_url
        if not resolved_url:
            raise ValueError("A webhook URL is required for WebhookNotificationSink")
        self._url = resolved_url
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout or settings.notify_timeout)
        )
        self._owns_client = client is None
        self._logger = logger.bind(component="webhook_sink")

    def send(self, notification: Notification) -> None:
        try:
            response = self._client.post(self._url, json=notification.to_dict())
        except httpx.HTTPError as exc:
            raise NotificationDispatchFailure(
                f"Webhook request failed: {exc}", recipient=notification.recipient
            ) from exc
        if response.is_error:
            raise NotificationDispatchFailure(
                f"Webhook returned HTTP {response.status_code}",
                recipient=notification.recipient,
            )
        self._logger.debug(
            "notification_posted",
            kind=notification.kind.value,
            to=notification.recipient,
            status_code=response.status_code,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


@dataclass
class DispatchReport:
    sent: int = 0
    failures: list[NotificationDispatchFailure] = field(default_factory=list)


def dispatch_all(sink: NotificationSink, notifications: Iterable[Notification]) -> DispatchReport:
    """Send each notification; a failure is logged and does not stop the rest."""
    report = DispatchReport()
    for notification in notifications:
        try:
            sink.send(notification)
        except NotificationDispatchFailure as exc:
            logger.warning(
                "notification_dispatch_failed",
                kind=notification.kind.value,
                to=notification.recipient,
                error=str(exc),
            )
            report.failures.append(exc)
            continue
        report.sent += 1
    return report
