"""Load ledger table layouts from the packaged YAML schema."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml  # type: ignore[import-untyped]

SCHEMA_PATH = Path(__file__).resolve().parent / "ledger_schema.yaml"


@dataclass(frozen=True)
class TableSchema:
    """Expected header layout of a single ledger table."""

    name: str
    columns: tuple[str, ...]
    id_column: str
    unique_id: bool = False

    @property
    def id_index(self) -> int:
        return self.columns.index(self.id_column)


@lru_cache
def load_ledger_schemas() -> dict[str, TableSchema]:
    """Load all table schemas keyed by table name.

    Raises:
        ValueError: If the schema file is malformed.
    """
    raw = SCHEMA_PATH.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{SCHEMA_PATH.name}: top level must be a mapping")

    schemas: dict[str, TableSchema] = {}
    for name, entry in data.items():
        if not isinstance(entry, dict):
            raise ValueError(f"{SCHEMA_PATH.name}: {name} must be a mapping")
        columns = entry.get("columns")
        if not isinstance(columns, list) or not columns:
            raise ValueError(f"{SCHEMA_PATH.name}: {name}.columns must be a non-empty list")
        id_column = str(entry.get("id_column") or columns[0])
        columns_tuple = tuple(str(column) for column in columns)
        if id_column not in columns_tuple:
            raise ValueError(
                f"{SCHEMA_PATH.name}: {name}.id_column {id_column!r} is not a column"
            )
        schemas[str(name)] = TableSchema(
            name=str(name),
            columns=columns_tuple,
            id_column=id_column,
            unique_id=bool(entry.get("unique_id", False)),
        )
    return schemas
