"""Resolve operating settings from the settings ledger.

The settings ledger is free-form key/value rows edited by the firm. Only a
closed set of keys is recognized; everything else is ignored. A missing,
empty or malformed value falls back to the documented default, so
resolution never fails.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

import structlog

from retainer_ledger.models import SettingRow

logger = structlog.get_logger(__name__)

_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_TRUE_VALUES = {"true", "yes", "1", "on"}
_FALSE_VALUES = {"false", "no", "0", "off"}


class SettingKey(str, Enum):
    """Recognized settings keys."""

    BASE_PAYMENT_URL = "BASE_PAYMENT_URL"
    DEFAULT_CURRENCY = "DEFAULT_CURRENCY"
    LOW_BALANCE_THRESHOLD = "LOW_BALANCE_THRESHOLD"
    DAILY_SYNC_TIME = "DAILY_SYNC_TIME"
    EMAIL_NOTIFICATIONS = "EMAIL_NOTIFICATIONS"
    AUTO_GENERATE_INVOICES = "AUTO_GENERATE_INVOICES"
    INVOICE_DAY = "INVOICE_DAY"
    SUMMARY_EMAIL_TIME = "SUMMARY_EMAIL_TIME"


# Labels used on the firm-facing settings sheet
SETTING_LABELS: dict[str, SettingKey] = {
    "payment link": SettingKey.BASE_PAYMENT_URL,
    "blawby payment url": SettingKey.BASE_PAYMENT_URL,
    "default currency": SettingKey.DEFAULT_CURRENCY,
    "low balance threshold": SettingKey.LOW_BALANCE_THRESHOLD,
    "daily sync time": SettingKey.DAILY_SYNC_TIME,
    "email notifications": SettingKey.EMAIL_NOTIFICATIONS,
    "auto generate invoices": SettingKey.AUTO_GENERATE_INVOICES,
    "auto-generate invoices": SettingKey.AUTO_GENERATE_INVOICES,
    "invoice day": SettingKey.INVOICE_DAY,
    "summary email time": SettingKey.SUMMARY_EMAIL_TIME,
}


@dataclass(frozen=True)
class OperatingSettings:
    """Fully populated operating configuration for a run."""

    base_payment_url: str | None = None
    default_currency: str = "USD"
    low_balance_threshold: Decimal = Decimal("1000")
    daily_sync_time: str = "01:00"
    email_notifications: bool = True
    auto_generate_invoices: bool = True
    invoice_day: int = 1
    summary_email_time: str = "06:30"


def resolve_key(raw_key: str) -> SettingKey | None:
    """Map a sheet key or label onto a recognized setting key."""
    key = raw_key.strip()
    if not key:
        return None
    try:
        return SettingKey(key.upper())
    except ValueError:
        return SETTING_LABELS.get(key.lower())


def _parse_bool(value: str) -> bool | None:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def _parse_threshold(value: str) -> Decimal | None:
    try:
        threshold = Decimal(value.replace(",", ""))
    except InvalidOperation:
        return None
    if not threshold.is_finite() or threshold < 0:
        return None
    return threshold


def _parse_invoice_day(value: str) -> int | None:
    try:
        number = Decimal(value)
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    day = int(number)
    if not 1 <= day <= 31:
        return None
    return day


def _parse_time(value: str) -> str | None:
    match = _TIME_PATTERN.match(value)
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def resolve_settings(rows: Iterable[SettingRow]) -> OperatingSettings:
    """Build operating settings from raw settings rows.

    Later rows win when a key appears more than once.
    """
    values: dict[str, object] = {}

    for row in rows:
        key = resolve_key(row.key)
        if key is None:
            logger.debug("setting_ignored", key=row.key)
            continue
        raw = str(row.value).strip()
        if not raw:
            continue

        parsed: object | None
        if key in (SettingKey.EMAIL_NOTIFICATIONS, SettingKey.AUTO_GENERATE_INVOICES):
            parsed = _parse_bool(raw)
        elif key is SettingKey.LOW_BALANCE_THRESHOLD:
            parsed = _parse_threshold(raw)
        elif key is SettingKey.INVOICE_DAY:
            parsed = _parse_invoice_day(raw)
        elif key in (SettingKey.DAILY_SYNC_TIME, SettingKey.SUMMARY_EMAIL_TIME):
            parsed = _parse_time(raw)
        elif key is SettingKey.DEFAULT_CURRENCY:
            parsed = raw.upper()
        else:
            parsed = raw

        if parsed is None:
            logger.warning("setting_malformed", key=key.value, value=raw)
            continue
        values[key.value.lower()] = parsed

    return OperatingSettings(**values)  # type: ignore[arg-type]
