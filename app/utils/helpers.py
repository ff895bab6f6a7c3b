"""
Helper utilities
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Tuple

from dateutil import parser as date_parser


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column is stored in"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def calculate_date_range(days: int = 30, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Calculate date range for analysis"""
    end_date = now or utcnow()
    start_date = end_date - timedelta(days=days)
    return start_date, end_date


def parse_ml_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a marketplace timestamp into naive UTC.

    The API mixes offsets ("2024-05-01T10:00:00.000-04:00"), "Z" suffixes and
    bare dates. Unparseable values come back as None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            try:
                parsed = date_parser.parse(str(value))
            except (ValueError, OverflowError):
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_ml_datetime(value: datetime) -> str:
    """Format a naive UTC datetime the way the orders search filter expects"""
    return value.strftime("%Y-%m-%dT%H:%M:%S.000-00:00")


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce API numbers that sometimes arrive as strings ("1.234,56" included)"""
    if value is None or value == "":
        return default
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return default
