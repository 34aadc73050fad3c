"""Tests for loading ledger tables into a snapshot."""

from datetime import date
from decimal import Decimal

import pytest

from retainer_ledger.errors import StructuralError
from retainer_ledger.ledger import CsvLedgerStore, LedgerLoader
from retainer_ledger.models import ClientStatus, PaymentStatus


def _load(files):
    return LedgerLoader(CsvLedgerStore(files.directory)).load()


class TestLedgerLoader:
    """Tests for schema-validated loading."""

    def test_loads_sample_ledger(self, sample_ledger):
        snapshot = _load(sample_ledger)

        assert [c.client_id for c in snapshot.clients] == ["CLI001", "CLI002", "CLI003"]
        assert snapshot.clients[2].status is ClientStatus.PAUSED
        assert snapshot.clients[0].target_balance == Decimal("5000")
        assert snapshot.payments[0].amount == Decimal("5000.00")
        assert snapshot.payments[0].status is PaymentStatus.COMPLETED
        assert snapshot.time_entries[0].hours == Decimal("2.5")
        assert snapshot.time_entries[0].date == date(2024, 3, 20)
        assert snapshot.time_entries[0].entry_ref == "timelogs:2"
        assert snapshot.lawyers[1].rate == Decimal("300")
        assert snapshot.matters[0].description == "Corporate Formation"
        assert len(snapshot.settings) == 3
        assert snapshot.invoices == []
        assert snapshot.warnings == []
        assert snapshot.processed_payment_ids == frozenset()

    def test_missing_required_ledger(self, ledger):
        ledger.path("lawyers").unlink()

        with pytest.raises(StructuralError) as exc_info:
            _load(ledger)

        assert exc_info.value.table == "lawyers"

    def test_header_mismatch(self, ledger):
        ledger.write("clients", [], header=["Client ID", "Email", "Name"])

        with pytest.raises(StructuralError) as exc_info:
            _load(ledger)

        assert exc_info.value.table == "clients"
        assert exc_info.value.row == 1

    def test_trailing_empty_header_cells_are_ignored(self, ledger):
        columns = list(ledger.schemas["lawyers"].columns) + ["", ""]
        ledger.write("lawyers", [["LAW001", "Alice", "a@example.com", "250", "ACTIVE"]], header=columns)

        snapshot = _load(ledger)

        assert len(snapshot.lawyers) == 1

    def test_bad_cell_points_at_row_and_column(self, ledger):
        ledger.write(
            "payments",
            [
                ["PAY001", "a@example.com", "100", "USD", "2024-03-01", "COMPLETED", ""],
                ["PAY002", "b@example.com", "abc", "USD", "2024-03-02", "COMPLETED", ""],
            ],
        )

        with pytest.raises(StructuralError) as exc_info:
            _load(ledger)

        assert exc_info.value.table == "payments"
        assert exc_info.value.row == 3
        assert exc_info.value.column == "Amount"

    def test_non_positive_hours_rejected(self, ledger):
        ledger.write("timelogs", [["2024-03-20", "CLI001", "MAT001", "LAW001", "0", ""]])

        with pytest.raises(StructuralError) as exc_info:
            _load(ledger)

        assert exc_info.value.column == "Hours"

    def test_rows_without_id_are_skipped(self, ledger):
        ledger.write(
            "clients",
            [
                ["", "ghost@example.com", "Ghost", "", "ACTIVE", ""],
                ["CLI001", "a@example.com", "A", "", "", ""],
            ],
        )

        snapshot = _load(ledger)

        assert [c.client_id for c in snapshot.clients] == ["CLI001"]
        assert snapshot.clients[0].status is ClientStatus.ACTIVE
        assert snapshot.clients[0].target_balance is None

    def test_blank_lawyer_rate_is_zero(self, ledger):
        ledger.write("lawyers", [["LAW009", "Pro Bono", "", "", "ACTIVE"]])

        snapshot = _load(ledger)

        assert snapshot.lawyers[0].rate == Decimal("0")

    def test_invalid_processed_payments_file(self, ledger):
        (ledger.directory / "processed_payments.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(StructuralError):
            _load(ledger)

    def test_duplicate_client_id_rejected(self, sample_ledger):
        rows = sample_ledger.read("clients")
        body = [list(row.values()) for row in rows]
        body.append(["CLI001", "other@example.com", "Other Person", "", "ACTIVE", ""])
        sample_ledger.write("clients", body)

        with pytest.raises(StructuralError) as exc_info:
            _load(sample_ledger)

        assert exc_info.value.table == "clients"
        assert exc_info.value.row == 5
        assert exc_info.value.column == "Client ID"

    def test_duplicate_lawyer_id_rejected(self, ledger):
        ledger.write(
            "lawyers",
            [
                ["LAW001", "Alice Brown", "alice@example.com", "250", "ACTIVE"],
                ["LAW001", "Alice Again", "alice2@example.com", "900", "ACTIVE"],
            ],
        )

        with pytest.raises(StructuralError) as exc_info:
            _load(ledger)

        assert exc_info.value.table == "lawyers"
        assert exc_info.value.column == "Lawyer ID"

    def test_repeated_time_entry_dates_are_allowed(self, ledger):
        ledger.write(
            "timelogs",
            [
                ["2024-03-20", "CLI001", "MAT001", "LAW001", "1", "Call"],
                ["2024-03-20", "CLI001", "MAT001", "LAW001", "2", "Drafting"],
            ],
        )

        snapshot = _load(ledger)

        assert len(snapshot.time_entries) == 2

    @pytest.mark.parametrize("cell", ["2024-03", "2024-03-01", "2024-03-15"])
    def test_invoice_month_is_normalized(self, ledger, cell):
        ledger.write(
            "invoices",
            [
                [cell, "a@example.com", "A", "2", "500.00", "Alice Brown", "Formation",
                 "INV001", "CLI001", "2024-04-01", "SENT"],
            ],
        )

        snapshot = _load(ledger)

        assert snapshot.invoices[0].month == "2024-03"
        assert snapshot.invoices[0].key == ("CLI001", "2024-03")

    def test_unreadable_invoice_month_rejected(self, ledger):
        ledger.write(
            "invoices",
            [
                ["March", "a@example.com", "A", "2", "500.00", "", "",
                 "INV001", "CLI001", "2024-04-01", ""],
            ],
        )

        with pytest.raises(StructuralError) as exc_info:
            _load(ledger)

        assert exc_info.value.column == "Month"
