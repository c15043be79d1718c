from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

MIN_YEAR = 1900
MAX_YEAR = 2100

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_DMY_DASH_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_DMY_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YMD_SLASH_RE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")


def _build(year: int, month: int, day: int) -> date | None:
    if year < MIN_YEAR or year > MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date(value: Any) -> date | None:
    """Return a calendar date for any supported representation, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _build(value.year, value.month, value.day)
    if isinstance(value, date):
        return _build(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        # epoch milliseconds
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return _build(parsed.year, parsed.month, parsed.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or text.upper() == "NA":
        return None
    match = _ISO_RE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _build(year, month, day)
    match = _DMY_DASH_RE.match(text) or _DMY_SLASH_RE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _build(year, month, day)
    match = _YMD_SLASH_RE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _build(year, month, day)
    return None
