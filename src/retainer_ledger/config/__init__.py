"""Configuration module for the retainer ledger engine."""

from retainer_ledger.config.logging import configure_logging, get_logger
from retainer_ledger.config.schema_loader import TableSchema, load_ledger_schemas
from retainer_ledger.config.settings import EngineSettings, get_settings

__all__ = [
    "EngineSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "TableSchema",
    "load_ledger_schemas",
]
