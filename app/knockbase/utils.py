from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from app.knockbase.errors import FieldError, ValidationFailed

_EMAIL_RX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime(timezone=False) columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_text(s: Any) -> str:
    return str(s).strip() if s is not None else ""


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RX.match(email))


def parse_int(s: Any) -> int | None:
    if s is None or isinstance(s, bool):
        return None
    if isinstance(s, int):
        return s
    s = str(s).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def parse_float(s: Any) -> float | None:
    if s is None or isinstance(s, bool):
        return None
    if isinstance(s, (int, float)):
        return float(s)
    s = str(s).strip()
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def parse_datetime(s: Any) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into naive UTC.
    Accepts a trailing 'Z' as sent by JavaScript clients. Raises ValueError on garbage.
    """
    if s is None:
        return None
    if isinstance(s, datetime):
        dt = s
    else:
        raw = str(s).strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def parse_org_unit_filter(args: Mapping[str, Any]) -> int | None:
    """Optional ``orgUnitId`` query filter. A value that is present but not an integer is a 400."""
    raw = args.get("orgUnitId") or args.get("org_unit_id")
    if raw is None or not str(raw).strip():
        return None
    unit_id = parse_int(raw)
    if unit_id is None:
        raise ValidationFailed([FieldError("orgUnitId", "orgUnitId must be an integer.")])
    return unit_id
