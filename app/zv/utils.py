from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SLUG_RE = re.compile(r"^[a-z0-9-]+$")


def clean_str(value: Any) -> str | None:
    """Strip a string value; empty strings become None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def validate_email(email: str | None) -> bool:
    return bool(email and _EMAIL_RE.match(email.strip()))


def _phone_digits(tel: str) -> str:
    return re.sub(r"\D", "", tel)


def validate_phone(tel: str | None) -> bool:
    """Russian numbers only: 11 digits starting with 7 or 8."""
    if not tel:
        return False
    digits = _phone_digits(tel)
    return len(digits) == 11 and digits[0] in ("7", "8")


def format_phone(tel: str) -> str:
    digits = _phone_digits(tel)
    if len(digits) == 11 and digits[0] in ("7", "8"):
        d = "7" + digits[1:]
        return f"+{d[0]} ({d[1:4]}) {d[4:7]}-{d[7:9]}-{d[9:11]}"
    return tel


def validate_slug(slug: str | None) -> bool:
    return bool(slug and _SLUG_RE.match(slug))


def parse_int(value: Any, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp; timezone-aware values are converted to naive UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def request_payload() -> dict:
    """JSON body if present, else form fields."""
    from flask import request

    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()
