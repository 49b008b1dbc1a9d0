from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import pytz
import structlog

from .errors import ConfigError
from .models import DateWindow

DATE_USAGE = "Invalid date format. Please use YYYY-MM-DD format (e.g., 2025-10-30)"


def get_tz(name: str = "UTC") -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as e:
        raise ConfigError(f"Unknown time zone: {name}") from e


def iso_date(d: dt.date | dt.datetime) -> str:
    if isinstance(d, dt.datetime):
        d = d.date()
    return d.isoformat()


def parse_day(value: str) -> dt.date:
    try:
        return dt.datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ConfigError(f"{DATE_USAGE}: {value!r}") from e


def yesterday(today: Optional[dt.date] = None, tz: Optional[dt.tzinfo] = None) -> dt.date:
    """The day before ``today``; without one, "today" is the current date in ``tz`` (UTC by default)."""
    if today is None:
        today = dt.datetime.now(tz or pytz.utc).date()
    return today - dt.timedelta(days=1)


def day_window(day: dt.date) -> DateWindow:
    """UTC calendar day: [00:00, +1d 00:00). The export time zone only decides which day."""
    start = pytz.utc.localize(dt.datetime.combine(day, dt.time(0, 0)))
    return DateWindow(day=day, start=start, end=start + dt.timedelta(days=1))


def round_2dp(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    q = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(q)


def parse_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    s = value.strip().replace(",", "")
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def redact(value: Optional[str]) -> str:
    if not value:
        return ""
    return value[:4] + "…" if len(value) > 8 else "***"


def configure_logging(level: str = "INFO") -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ConfigError(f"Unknown LOG_LEVEL: {level}")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(numeric))
