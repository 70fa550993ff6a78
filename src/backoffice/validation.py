"""Shared backend validation for back-office payloads.

Admin screens and public pages submit JSON bodies as dictionaries. These
validators check that important fields are present and well-formed.

On validation failure, raise `FormValidationError` so the API can return HTTP 422
with structured `field_errors`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional


@dataclass
class FormValidationError(Exception):
    """Exception raised for payload validation failures.

    Attributes:
        field_errors: mapping of field name -> human-readable error message.
        message: optional top-level message.
    """

    field_errors: Dict[str, str]
    message: str = "Validation failed"

    def __str__(self) -> str:  # pragma: no cover
        return self.message


def _as_str(v: Any) -> str:
    return "" if v is None else str(v)


def _strip(v: Any) -> str:
    return _as_str(v).strip()


def add_error(errors: Dict[str, str], field: str, message: str) -> None:
    if field not in errors:
        errors[field] = message


def require_str(
    payload: Dict[str, Any],
    field: str,
    errors: Dict[str, str],
    *,
    label: Optional[str] = None,
    min_length: Optional[int] = None,
) -> str:
    value = _strip(payload.get(field))
    if not value:
        add_error(errors, field, f"{label or field} is required")
    elif min_length is not None and len(value) < min_length:
        add_error(errors, field, f"{label or field} must be at least {min_length} characters")
    return value


def optional_str(payload: Dict[str, Any], field: str) -> Optional[str]:
    """Stripped value, or None when missing or blank."""
    value = _strip(payload.get(field))
    return value or None


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    s = _strip(value).lower()
    if s in ("true", "1", "yes", "y", "on"):
        return True
    if s in ("false", "0", "no", "n", "off", ""):
        return False
    return default


def to_float(value: Any) -> Optional[float]:
    """Lenient number coercion for money fields; blank or invalid -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    s = _strip(value).replace(",", "")
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def clamp_int(value: Any, low: int = 0, high: int = 2147483647) -> int:
    """Parse to int (0 on failure) and clamp into [low, high]."""
    try:
        n = int(float(_strip(value) or 0))
    except (TypeError, ValueError):
        n = 0
    return max(low, min(high, n))


def parse_iso_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = _strip(value)
    if not s:
        return None
    return date.fromisoformat(s[:10])


def validate_date_iso(value: Any, errors: Dict[str, str], field: str, *, required: bool = True) -> Optional[date]:
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, f"{field} is required")
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        add_error(errors, field, f"{field} must be a valid date (YYYY-MM-DD)")
        return None


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(value: Any, errors: Dict[str, str], field: str = "email") -> Optional[str]:
    value = _strip(value)
    if not value:
        return None
    if not _EMAIL_RE.match(value):
        add_error(errors, field, "Email is not valid")
    return value


def validate_in(value: Any, allowed: Iterable[str], errors: Dict[str, str], field: str, *, required: bool = True) -> str:
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, f"{field} is required")
        return raw
    if raw not in set(allowed):
        add_error(errors, field, f"{field} has an invalid value")
    return raw


def parse_id_list(value: Any, errors: Dict[str, str], field: str) -> list[int]:
    if value is None:
        return []
    if not isinstance(value, list):
        add_error(errors, field, f"{field} must be a list")
        return []
    ids: list[int] = []
    for v in value:
        try:
            ids.append(int(v))
        except (TypeError, ValueError):
            add_error(errors, field, f"{field} contains invalid id(s)")
            return []
    return ids


def raise_if_errors(errors: Dict[str, str], message: str = "Please correct the highlighted fields") -> None:
    if errors:
        raise FormValidationError(field_errors=errors, message=message)


def as_id(value: Any, field: str) -> int:
    """Row id from a JSON body; anything non-integer is a 422 on `field`."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise FormValidationError(field_errors={field: f"{field} must be a number"}, message="Invalid identifier")
