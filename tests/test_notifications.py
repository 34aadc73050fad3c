"""Tests for notification sinks and dispatch."""

import json
from decimal import Decimal

import httpx
import pytest

from retainer_ledger.errors import NotificationDispatchFailure
from retainer_ledger.notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationKind,
    WebhookNotificationSink,
    build_payment_link,
    dispatch_all,
)


def _notification(recipient="client1@example.com"):
    return Notification(
        kind=NotificationKind.LOW_BALANCE,
        recipient=recipient,
        subject="Low retainer balance",
        body="Please top up.",
        cc=("alice@example.com",),
        metadata={"client_id": "CLI001"},
    )


class TestPaymentLink:
    """Tests for prefilled payment links."""

    def test_builds_prefilled_link(self):
        link = build_payment_link("https://pay.example.com/firm", "a+b@example.com", Decimal("250"))
        assert link == "https://pay.example.com/firm?email=a%2Bb%40example.com&amount=250.00"

    def test_appends_to_existing_query(self):
        link = build_payment_link("https://pay.example.com/?firm=7", "a@example.com", Decimal("1"))
        assert link == "https://pay.example.com/?firm=7&email=a%40example.com&amount=1.00"

    def test_none_without_base(self):
        assert build_payment_link(None, "a@example.com", Decimal("1")) is None
        assert build_payment_link("", "a@example.com", Decimal("1")) is None


class TestWebhookSink:
    """Tests for the webhook notification sink."""

    def test_posts_json(self):
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        sink = WebhookNotificationSink(url="https://relay.example.com/hook", client=client)

        sink.send(_notification())

        payload = json.loads(captured[0].content)
        assert str(captured[0].url) == "https://relay.example.com/hook"
        assert payload["kind"] == "low_balance"
        assert payload["to"] == "client1@example.com"
        assert payload["cc"] == ["alice@example.com"]
        assert payload["metadata"] == {"client_id": "CLI001"}

    def test_http_error_status_raises(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        sink = WebhookNotificationSink(url="https://relay.example.com/hook", client=client)

        with pytest.raises(NotificationDispatchFailure) as exc_info:
            sink.send(_notification())

        assert exc_info.value.recipient == "client1@example.com"
        assert "503" in str(exc_info.value)

    def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        sink = WebhookNotificationSink(url="https://relay.example.com/hook", client=client)

        with pytest.raises(NotificationDispatchFailure):
            sink.send(_notification())

    def test_requires_url(self):
        with pytest.raises(ValueError):
            WebhookNotificationSink()

    def test_url_from_settings(self, monkeypatch):
        monkeypatch.setenv("RETAINER_NOTIFY_WEBHOOK_URL", "https://relay.example.com/env")
        captured: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(str(request.url))
            return httpx.Response(200)

        sink = WebhookNotificationSink(client=httpx.Client(transport=httpx.MockTransport(handler)))
        sink.send(_notification())

        assert captured == ["https://relay.example.com/env"]


class TestDispatchAll:
    """Tests for dispatching a batch of notifications."""

    def test_failure_does_not_stop_the_rest(self, sink):
        sink.fail_for.add("bad@example.com")
        notifications = [
            _notification("a@example.com"),
            _notification("bad@example.com"),
            _notification("c@example.com"),
        ]

        report = dispatch_all(sink, notifications)

        assert report.sent == 2
        assert [failure.recipient for failure in report.failures] == ["bad@example.com"]
        assert [n.recipient for n in sink.sent] == ["a@example.com", "c@example.com"]

    def test_logging_sink_records(self):
        sink = LoggingNotificationSink()
        report = dispatch_all(sink, [_notification()])

        assert report.sent == 1
        assert sink.sent[0].recipient == "client1@example.com"
