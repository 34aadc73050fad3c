"""Pytest configuration and fixtures."""

import csv
import os
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from retainer_ledger.config.schema_loader import load_ledger_schemas
from retainer_ledger.config.settings import get_settings
from retainer_ledger.errors import NotificationDispatchFailure
from retainer_ledger.notifications import Notification

# Keep a developer's own environment out of the tests
for _var in (
    "RETAINER_LEDGER_DIR",
    "RETAINER_LOCK_FILENAME",
    "RETAINER_DEFAULT_TARGET_POLICY",
    "RETAINER_DEFAULT_TARGET_MULTIPLIER",
    "RETAINER_NOTIFY_WEBHOOK_URL",
    "RETAINER_NOTIFY_TIMEOUT",
):
    os.environ.pop(_var, None)

REQUIRED = ("clients", "payments", "timelogs", "lawyers", "matters")


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class LedgerFiles:
    """Writes and reads ledger CSVs in a temporary directory."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.schemas = load_ledger_schemas()

    def path(self, name: str) -> Path:
        return self.directory / f"{name}.csv"

    def write(self, name: str, rows: list[list[str]], header: list[str] | None = None) -> None:
        columns = header if header is not None else list(self.schemas[name].columns)
        with self.path(name).open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(columns)
            writer.writerows(rows)

    def read(self, name: str) -> list[dict[str, str]]:
        if not self.path(name).exists():
            return []
        with self.path(name).open("r", encoding="utf-8", newline="") as handle:
            return list(csv.DictReader(handle))

    def snapshot(self) -> dict[str, str]:
        """Raw text of every file, for before/after comparisons."""
        return {
            path.name: path.read_text(encoding="utf-8")
            for path in sorted(self.directory.iterdir())
            if path.is_file()
        }


@pytest.fixture
def ledger(tmp_path) -> LedgerFiles:
    """Empty ledger with every required table present (headers only)."""
    directory = tmp_path / "ledger"
    directory.mkdir()
    files = LedgerFiles(directory)
    for name in REQUIRED:
        files.write(name, [])
    return files


@pytest.fixture
def sample_ledger(ledger) -> LedgerFiles:
    """Ledger mirroring the firm's sample data set."""
    ledger.write(
        "clients",
        [
            ["CLI001", "client1@example.com", "John Doe", "5000", "ACTIVE", "2024-03-20"],
            ["CLI002", "client2@example.com", "Jane Smith", "3000", "ACTIVE", "2024-03-20"],
            ["CLI003", "client3@example.com", "Bob Johnson", "2000", "PAUSED", "2024-03-20"],
        ],
    )
    ledger.write(
        "payments",
        [
            ["PAY001", "client1@example.com", "5000", "USD", "2024-03-01", "COMPLETED", ""],
            ["PAY002", "client2@example.com", "3000", "USD", "2024-03-05", "COMPLETED", ""],
            ["PAY003", "client3@example.com", "2000", "USD", "2024-03-10", "COMPLETED", ""],
        ],
    )
    ledger.write(
        "lawyers",
        [
            ["LAW001", "Alice Brown", "alice@example.com", "250", "ACTIVE"],
            ["LAW002", "Charlie Davis", "charlie@example.com", "300", "ACTIVE"],
        ],
    )
    ledger.write(
        "timelogs",
        [
            ["2024-03-20", "CLI001", "MAT001", "LAW001", "2.5", "Initial consultation"],
            ["2024-03-20", "CLI002", "MAT002", "LAW002", "1.5", "Document review"],
            ["2024-03-20", "CLI003", "MAT003", "LAW001", "3.0", "Case strategy meeting"],
        ],
    )
    ledger.write(
        "matters",
        [
            ["MAT001", "CLI001", "John Doe", "Corporate Formation", "10000", "ACTIVE",
             "2024-03-01", "2024-03-20"],
            ["MAT002", "CLI002", "Jane Smith", "Contract Review", "5000", "ACTIVE",
             "2024-03-05", "2024-03-20"],
            ["MAT003", "CLI003", "Bob Johnson", "Legal Consultation", "3000", "ACTIVE",
             "2024-03-10", "2024-03-20"],
        ],
    )
    ledger.write(
        "settings",
        [
            ["BASE_PAYMENT_URL", "https://pay.example.com/firm", "Base URL for payment links"],
            ["DEFAULT_CURRENCY", "USD", "Default currency for payments"],
            ["LOW_BALANCE_THRESHOLD", "1000", "Balance threshold for low balance warnings"],
        ],
    )
    return ledger


@dataclass
class RecordingSink:
    """Notification sink that records messages and can be told to fail."""

    sent: list[Notification] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)

    def send(self, notification: Notification) -> None:
        if notification.recipient in self.fail_for or "*" in self.fail_for:
            raise NotificationDispatchFailure("relay down", recipient=notification.recipient)
        self.sent.append(notification)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
