"""Read raw ledger tables into a typed, complete snapshot."""

from collections.abc import Sequence
from typing import Any, Protocol

import structlog

from retainer_ledger.config.schema_loader import TableSchema, load_ledger_schemas
from retainer_ledger.errors import StructuralError
from retainer_ledger.ledger.codec import PARSERS, CellError
from retainer_ledger.models import LedgerSnapshot

logger = structlog.get_logger(__name__)

# A run cannot compute balances without these.
REQUIRED_TABLES = ("clients", "payments", "timelogs", "lawyers", "matters")
# Written by the engine itself; absent on a fresh ledger.
OPTIONAL_TABLES = ("invoices", "lowbalance", "settings")


class LedgerSource(Protocol):
    """Anything that can hand back raw ledger tables."""

    def read_table(self, name: str) -> list[list[str]] | None:
        """Return header row plus data rows, or None if the table does not exist."""
        ...

    def read_processed_payment_ids(self) -> frozenset[str]:
        ...


def _normalize_header(header: Sequence[str]) -> tuple[str, ...]:
    cells = [str(cell).strip() for cell in header]
    while cells and not cells[-1]:
        cells.pop()
    return tuple(cells)


class LedgerLoader:
    """Schema-validating loader.

    Either every required ledger loads, or ``load`` raises
    ``StructuralError`` and nothing is returned.
    """

    def __init__(
        self,
        source: LedgerSource,
        schemas: dict[str, TableSchema] | None = None,
    ) -> None:
        self._source = source
        self._schemas = schemas if schemas is not None else load_ledger_schemas()
        self._logger = logger.bind(component="ledger_loader")

    def load(self) -> LedgerSnapshot:
        tables: dict[str, list[Any]] = {}
        for name in REQUIRED_TABLES + OPTIONAL_TABLES:
            tables[name] = self._load_table(name, required=name in REQUIRED_TABLES)

        snapshot = LedgerSnapshot(
            clients=tables["clients"],
            payments=tables["payments"],
            time_entries=tables["timelogs"],
            lawyers=tables["lawyers"],
            matters=tables["matters"],
            invoices=tables["invoices"],
            warnings=tables["lowbalance"],
            settings=tables["settings"],
            processed_payment_ids=self._source.read_processed_payment_ids(),
        )
        self._logger.info(
            "ledger_loaded",
            **{name: len(records) for name, records in tables.items()},
            processed_payments=len(snapshot.processed_payment_ids),
        )
        return snapshot

    def _load_table(self, name: str, required: bool) -> list[Any]:
        schema = self._schemas.get(name)
        if schema is None:
            raise StructuralError(f"No schema declared for ledger {name!r}", table=name)

        rows = self._source.read_table(name)
        if not rows:
            if required:
                raise StructuralError(f"Required ledger {name!r} is missing", table=name)
            self._logger.debug("optional_ledger_missing", table=name)
            return []

        header = _normalize_header(rows[0])
        if header != schema.columns:
            raise StructuralError(
                f"Ledger {name!r} header mismatch: expected {list(schema.columns)}, "
                f"got {list(header)}",
                table=name,
                row=1,
            )

        parser = PARSERS[name]
        records: list[Any] = []
        seen_ids: dict[str, int] = {}
        for offset, row in enumerate(rows[1:]):
            row_number = offset + 2  # 1-based, header is row 1
            if schema.id_index >= len(row) or not str(row[schema.id_index]).strip():
                continue
            if schema.unique_id:
                record_id = str(row[schema.id_index]).strip()
                if record_id in seen_ids:
                    raise StructuralError(
                        f"Ledger {name!r} row {row_number}: {schema.id_column} {record_id!r} "
                        f"already used on row {seen_ids[record_id]}",
                        table=name,
                        row=row_number,
                        column=schema.id_column,
                    )
                seen_ids[record_id] = row_number
            try:
                records.append(parser(row, row_number))
            except CellError as exc:
                raise StructuralError(
                    f"Ledger {name!r} row {row_number}: {exc}",
                    table=name,
                    row=row_number,
                    column=exc.column,
                ) from exc
        return records
