from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
import math
import re

DEFAULT_BIRTH_DATE = "01/01/1985"


def format_money(value: float) -> str:
    """
    Formats a monetary amount the way the remote forms expect.
    Format: 1234,56 (no thousands separator, negatives and NaN clamp to 0,00)
    """
    safe = max(0.0, value) if math.isfinite(value) else 0.0
    return f"{safe:.2f}".replace(".", ",")


def format_integer(value: float) -> str:
    safe = max(0, round(value)) if math.isfinite(value) else 0
    return str(int(safe))


def format_br_date(value: Optional[date]) -> str:
    """Formats a date as DD/MM/YYYY, falling back to the remote's default birth date."""
    if value is None:
        return DEFAULT_BIRTH_DATE
    return value.strftime("%d/%m/%Y")


def parse_br_number(value: Any) -> Optional[float]:
    """
    Parses numbers as the remote emits them: native numbers, "1234.56", "1234,56" or "1.234,56".
    Returns None for anything unparseable.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    if "." in trimmed and "," in trimmed:
        normalized = trimmed.replace(".", "").replace(",", ".", 1)
    elif "," in trimmed:
        normalized = trimmed.replace(",", ".", 1)
    else:
        normalized = trimmed

    try:
        parsed = float(normalized)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def normalize_uf(raw: str) -> str:
    """Upper-cases and strips anything but letters, keeping at most two characters."""
    return re.sub(r"[^A-Z]", "", (raw or "").upper())[:2]


def format_brasilia_time(dt: datetime) -> str:
    """
    Converts UTC datetime to Brasília time (UTC-3) and formats it.
    Format: DD/MM/YYYY at HH:mm:ss
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    # Brasilia is UTC-3 (ignoring DST as it's abolished)
    brasilia_tz = timezone(timedelta(hours=-3))
    dt_brasilia = dt.astimezone(brasilia_tz)

    return dt_brasilia.strftime("%d/%m/%Y at %H:%M:%S")
