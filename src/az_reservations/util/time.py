from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

_FRACTION_RE = re.compile(r"\.(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso(seconds: bool = True) -> str:
    """
    Return current UTC time in ISO-8601 format.
    - If seconds is True, use seconds precision (stable strings).
    - Else, use milliseconds precision.
    """
    if seconds:
        return utc_now().isoformat(timespec="seconds")
    return utc_now().isoformat(timespec="milliseconds")


def export_timestamp(now: Optional[datetime] = None) -> str:
    return (now or utc_now()).astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def parse_azure_datetime(value: Any) -> Optional[datetime]:
    """
    Parse the timestamp strings returned by az.

    Accepts a trailing Z, explicit offsets, date-only values and fractional
    seconds of any length (az emits 7 digits). Naive values are taken as UTC.
    Returns None for empty or unparsable input.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value or "").strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d")
