"""CSV-directory ledger store.

One ``<table>.csv`` file per ledger plus ``processed_payments.json`` holding
the set of payment ids already applied. Writes go to temporary files first
and are swapped in with ``os.replace`` only once every file has been
written, so a failure while preparing the batch leaves the ledger untouched.
"""

from __future__ import annotations

import csv
import json
import os
from pathlib import Path

import structlog

from retainer_ledger.config.schema_loader import TableSchema, load_ledger_schemas
from retainer_ledger.errors import StructuralError
from retainer_ledger.ledger.changes import LedgerChanges
from retainer_ledger.ledger.codec import format_client, format_invoice, format_warning
from retainer_ledger.ledger.lock import RunLock

logger = structlog.get_logger(__name__)

PROCESSED_PAYMENTS_FILE = "processed_payments.json"


class CsvLedgerStore:
    """Ledger source and sink backed by a directory of CSV files."""

    def __init__(
        self,
        directory: Path,
        schemas: dict[str, TableSchema] | None = None,
    ) -> None:
        self._directory = Path(directory)
        self._schemas = schemas if schemas is not None else load_ledger_schemas()
        self._logger = logger.bind(component="csv_store", directory=str(self._directory))

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, name: str) -> Path:
        return self._directory / f"{name}.csv"

    def lock(self, filename: str = ".reconcile.lock") -> RunLock:
        return RunLock(self._directory / filename)

    # === Reading ===

    def read_table(self, name: str) -> list[list[str]] | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8-sig", newline="") as handle:
            rows = [row for row in csv.reader(handle) if any(cell.strip() for cell in row)]
        return rows or None

    def read_processed_payment_ids(self) -> frozenset[str]:
        path = self._directory / PROCESSED_PAYMENTS_FILE
        if not path.exists():
            return frozenset()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StructuralError(
                f"{PROCESSED_PAYMENTS_FILE} is not valid JSON", table="processed_payments"
            ) from exc
        if not isinstance(data, list):
            raise StructuralError(
                f"{PROCESSED_PAYMENTS_FILE} must hold a list of payment ids",
                table="processed_payments",
            )
        return frozenset(str(item) for item in data)

    # === Writing ===

    def initialize(self) -> list[str]:
        """Create any missing ledger files with just their header row.

        Returns:
            Names of the tables that were created.
        """
        self._directory.mkdir(parents=True, exist_ok=True)
        created: list[str] = []
        for name, schema in self._schemas.items():
            path = self.path_for(name)
            if path.exists():
                continue
            self._write_rows(path, [list(schema.columns)])
            created.append(name)
        if created:
            self._logger.info("ledger_initialized", tables=created)
        return created

    def apply(self, changes: LedgerChanges) -> None:
        """Apply a change batch to disk."""
        if changes.is_empty:
            self._logger.debug("no_changes_to_apply")
            return

        staged: dict[Path, list[list[str]] | str] = {}

        if changes.clients is not None:
            staged[self.path_for("clients")] = self._with_header(
                "clients", [format_client(client) for client in changes.clients]
            )

        if changes.new_invoices:
            existing = self.read_table("invoices") or [list(self._schemas["invoices"].columns)]
            staged[self.path_for("invoices")] = existing + [
                format_invoice(invoice) for invoice in changes.new_invoices
            ]

        if changes.warnings is not None:
            staged[self.path_for("lowbalance")] = self._with_header(
                "lowbalance", [format_warning(warning) for warning in changes.warnings]
            )

        if changes.processed_payment_ids is not None:
            staged[self._directory / PROCESSED_PAYMENTS_FILE] = json.dumps(
                sorted(changes.processed_payment_ids), indent=2
            )

        temp_paths: dict[Path, Path] = {}
        try:
            for path, content in staged.items():
                temp_path = path.with_name(f".{path.name}.tmp")
                if isinstance(content, str):
                    temp_path.write_text(content + "\n", encoding="utf-8")
                else:
                    self._write_rows(temp_path, content)
                temp_paths[path] = temp_path
        except OSError:
            for temp_path in temp_paths.values():
                temp_path.unlink(missing_ok=True)
            raise

        for path, temp_path in temp_paths.items():
            os.replace(temp_path, path)

        self._logger.info(
            "ledger_changes_applied",
            files=sorted(path.name for path in temp_paths),
            new_invoices=len(changes.new_invoices),
        )

    def _with_header(self, name: str, rows: list[list[str]]) -> list[list[str]]:
        return [list(self._schemas[name].columns)] + rows

    @staticmethod
    def _write_rows(path: Path, rows: list[list[str]]) -> None:
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerows(rows)
