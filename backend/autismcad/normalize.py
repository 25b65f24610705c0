"""
AutismCad Backend — Input Normalization Helpers
================================================

Small pure helpers shared by the services: digit extraction for CPF/CEP,
lenient date parsing, optional-string trimming, and unique-violation
detection on IntegrityError.
"""

import re
from datetime import date, datetime, time
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")


def only_digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def normalize_cpf(value: Optional[str]) -> str:
    """Digits only, first 11."""
    return only_digits(value)[:11]


def optional_str(value: Any) -> Optional[str]:
    """Trimmed string, or None when empty/missing."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def is_iso_date(value: Optional[str]) -> bool:
    return bool(value) and bool(_ISO_DATE.match(str(value).strip()))


def parse_date(value: Any) -> Optional[date]:
    """
    Lenient date parsing: date/datetime objects, 'YYYY-MM-DD', ISO datetimes
    ('2024-03-01T10:00:00Z') and Brazilian 'DD/MM/YYYY'. Anything else → None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None

    br = _BR_DATE.match(text)
    if br:
        day, month, year = br.groups()
        text = f"{year}-{month}-{day}"

    try:
        return date.fromisoformat(text[:10]) if _ISO_DATE.match(text[:10]) else None
    except ValueError:
        return None


def date_key(value: Any) -> Optional[str]:
    """'YYYY-MM-DD' for anything parse_date accepts."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def time_key(value: Any) -> Optional[str]:
    """'HH:MM:SS' for time objects or time strings."""
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    return str(value)


def iso_datetime(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def is_unique_violation(error: Exception) -> bool:
    """True for unique-constraint failures (PostgreSQL 23505 or SQLite UNIQUE)."""
    if not isinstance(error, IntegrityError):
        return False
    orig = getattr(error, "orig", None)
    if getattr(orig, "sqlstate", None) == "23505" or getattr(orig, "pgcode", None) == "23505":
        return True
    message = str(orig or error).lower()
    return "duplicate key value violates unique constraint" in message or "unique constraint failed" in message
