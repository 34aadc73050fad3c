"""Tests for client balance computation."""

from datetime import date
from decimal import Decimal

import pytest

from retainer_ledger.balance import BalanceEngine, TargetPolicy, classify_balance
from retainer_ledger.errors import SkipKind
from retainer_ledger.models import (
    BalanceState,
    Client,
    Lawyer,
    Matter,
    Payment,
    PaymentStatus,
    TimeEntry,
)
from retainer_ledger.reference_index import ReferenceIndex
from retainer_ledger.settings_resolver import OperatingSettings


def _payment(payment_id, amount, email="client1@example.com", status=PaymentStatus.COMPLETED):
    return Payment(
        payment_id=payment_id,
        client_email=email,
        amount=Decimal(amount),
        currency="USD",
        date=date(2024, 3, 1),
        status=status,
    )


def _entry(hours, lawyer_id="LAW001", matter_id="MAT001"):
    return TimeEntry(
        date=date(2024, 3, 20),
        client_id="CLI001",
        matter_id=matter_id,
        lawyer_id=lawyer_id,
        hours=Decimal(hours),
    )


@pytest.fixture
def index():
    return ReferenceIndex(
        [Client("CLI001", "client1@example.com", "John Doe", target_balance=Decimal("300"))],
        [Lawyer("LAW001", "Alice Brown", "alice@example.com", Decimal("250"))],
        [Matter("MAT001", "CLI001")],
    )


def _compute(index, payments, entries, **engine_kwargs):
    billed, _ = index.resolve_entries(entries)
    engine = BalanceEngine(index, OperatingSettings(), **engine_kwargs)
    return engine.compute(payments, billed)


class TestClassifyBalance:
    """Tests for balance state classification."""

    @pytest.mark.parametrize(
        "balance,target,expected",
        [
            ("500", "300", BalanceState.OK),
            ("300", "300", BalanceState.OK),
            ("299.99", "300", BalanceState.LOW),
            ("0", "300", BalanceState.LOW),
            ("-0.01", "300", BalanceState.OVERDRAWN),
        ],
    )
    def test_states(self, balance, target, expected):
        assert classify_balance(Decimal(balance), Decimal(target)) is expected


class TestBalanceEngine:
    """Tests for per-client balance computation."""

    def test_payments_minus_billed_time(self, index):
        report = _compute(
            index,
            [_payment("P1", "500"), _payment("P2", "500")],
            [_entry("2")],
        )

        position = report.get("CLI001")
        assert position.total_paid == Decimal("1000.00")
        assert position.total_billed == Decimal("500.00")
        assert position.balance == Decimal("500.00")
        assert position.state is BalanceState.OK
        assert position.payment_count == 2
        assert position.hours == Decimal("2")

    def test_only_completed_payments_count(self, index):
        report = _compute(
            index,
            [
                _payment("P1", "500"),
                _payment("P2", "900", status=PaymentStatus.PENDING),
                _payment("P3", "900", status=PaymentStatus.FAILED),
            ],
            [],
        )
        assert report.get("CLI001").total_paid == Decimal("500.00")

    def test_duplicate_payment_rows_count_once(self, index):
        report = _compute(index, [_payment("P1", "500"), _payment("P1", "500")], [])

        assert report.get("CLI001").total_paid == Decimal("500.00")
        assert [skip.kind for skip in report.skips] == [SkipKind.DUPLICATE_PAYMENT_ROW]

    def test_fractional_hours_round_once_at_the_end(self):
        index = ReferenceIndex(
            [Client("CLI001", "client1@example.com", "John Doe")],
            [Lawyer("LAW001", "Alice", "", Decimal("333.33"))],
            [Matter("MAT001", "CLI001")],
        )
        report = _compute(index, [], [_entry("0.1"), _entry("0.1"), _entry("0.1")])

        # 3 x 0.1 x 333.33 = 99.999 -> 100.00
        assert report.get("CLI001").total_billed == Decimal("100.00")

    def test_overdrawn(self, index):
        report = _compute(index, [_payment("P1", "100")], [_entry("1")])

        position = report.get("CLI001")
        assert position.balance == Decimal("-150.00")
        assert position.state is BalanceState.OVERDRAWN
        assert position.top_up_amount == Decimal("450.00")

    def test_report_totals(self, index):
        report = _compute(index, [_payment("P1", "1000")], [_entry("1")])

        assert report.total_paid == Decimal("1000.00")
        assert report.total_billed == Decimal("250.00")
        assert report.net_balance == Decimal("750.00")
        assert report.count_by_state()[BalanceState.OK] == 1


class TestDefaultTarget:
    """Tests for the default target balance rule."""

    def test_blank_target_uses_highest_active_rate(self):
        index = ReferenceIndex(
            [Client("CLI001", "client1@example.com", "John Doe")],
            [
                Lawyer("LAW001", "Alice", "", Decimal("300")),
                Lawyer("LAW002", "Gone", "", Decimal("800"), status="INACTIVE"),
            ],
            [Matter("MAT001", "CLI001")],
        )

        report = _compute(index, [_payment("P1", "299")], [])

        position = report.get("CLI001")
        assert position.target == Decimal("300.00")
        assert position.target_is_default
        assert position.state is BalanceState.LOW

    def test_multiplier(self):
        index = ReferenceIndex(
            [Client("CLI001", "client1@example.com", "John Doe")],
            [Lawyer("LAW001", "Alice", "", Decimal("300"))],
            [],
        )
        engine = BalanceEngine(index, OperatingSettings(), multiplier=Decimal("10"))
        assert engine.default_target() == Decimal("3000.00")

    def test_threshold_policy(self, index):
        settings = OperatingSettings(low_balance_threshold=Decimal("750"))
        engine = BalanceEngine(index, settings, policy=TargetPolicy.THRESHOLD)
        assert engine.default_target() == Decimal("750.00")

    def test_no_active_lawyers_falls_back_to_threshold(self):
        index = ReferenceIndex([], [], [])
        engine = BalanceEngine(index, OperatingSettings())
        assert engine.default_target() == Decimal("1000.00")

    def test_explicit_target_wins(self, index):
        report = _compute(index, [], [])

        position = report.get("CLI001")
        assert position.target == Decimal("300.00")
        assert not position.target_is_default
