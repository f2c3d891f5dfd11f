from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import LLM_DEBUG, DEFAULT_TIMEZONE, ISO_OFFSET_RE


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def resolve_zone(name: Optional[str]) -> ZoneInfo:
    """Return the ZoneInfo for ``name``, falling back to DEFAULT_TIMEZONE."""
    for candidate in (name, DEFAULT_TIMEZONE, "UTC"):
        if not isinstance(candidate, str) or not candidate.strip():
            continue
        try:
            return ZoneInfo(candidate.strip())
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def has_utc_offset(value: str) -> bool:
    return bool(ISO_OFFSET_RE.search((value or "").strip()))


def parse_iso_datetime(value: str, tz_name: Optional[str] = None) -> datetime:
    """
    Parse an ISO-8601 timestamp. Naive values are taken as wall-clock time in
    ``tz_name``. Raises ValueError for anything unparsable.
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("empty timestamp")
    dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=resolve_zone(tz_name))
    return dt


def shift_iso(value: str, minutes: int) -> str:
    """Add ``minutes`` to an ISO timestamp, keeping its offset style."""
    raw = value.strip()
    dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    shifted = dt + timedelta(minutes=minutes)
    if dt.tzinfo is None:
        return shifted.isoformat()
    text = shifted.isoformat()
    if raw.endswith("Z"):
        text = text.replace("+00:00", "Z")
    return text


def _to_rfc3339(value: str, tz_name: Optional[str] = None) -> str:
    dt = parse_iso_datetime(value, tz_name)
    return (
        dt.astimezone(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def format_local_datetime(value: str, tz_name: Optional[str] = None) -> str:
    try:
        dt = parse_iso_datetime(value, tz_name)
    except ValueError:
        return value
    local = dt.astimezone(resolve_zone(tz_name))
    return local.strftime("%a %b %d, %Y %I:%M %p")
