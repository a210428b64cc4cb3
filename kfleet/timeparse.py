"""Parsing of datetime-local form values into UTC timestamps."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from kfleet.state import HandlerError

FORM_FORMAT = "%Y-%m-%dT%H:%M"
_MAX_OFFSET_SECONDS = 86_400


def parse_timestamptz(datetime_str: str, tz_offset: int) -> datetime:
    """Parse 'YYYY-MM-DDTHH:MM' given in a zone *tz_offset* hours east of UTC."""
    if not datetime_str:
        raise HandlerError("Empty datetime string")
    try:
        naive = datetime.strptime(datetime_str, FORM_FORMAT)
    except ValueError as exc:
        raise HandlerError(f"Invalid datetime format: {exc}") from exc

    offset_seconds = tz_offset * 3600
    if not -_MAX_OFFSET_SECONDS < offset_seconds < _MAX_OFFSET_SECONDS:
        raise HandlerError("Invalid timezone offset")

    local = naive.replace(tzinfo=timezone(timedelta(seconds=offset_seconds)))
    return local.astimezone(timezone.utc)


def parse_optional_timestamptz(datetime_opt: str | None, tz_offset: int) -> datetime | None:
    """Like parse_timestamptz, but None or a blank string yields None."""
    if datetime_opt is None or not datetime_opt.strip():
        return None
    return parse_timestamptz(datetime_opt, tz_offset)