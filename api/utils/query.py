from datetime import datetime, timezone

from dateutil import parser as dtp

from storage.base import INT64_MAX, INT64_MIN
from storage.errors import InputError


def parse_bound(raw: str | None) -> int | None:
    """
    Parse a range bound given as unix seconds or an ISO-8601 datetime.
    Naive datetimes are treated as UTC.
    """
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        pass
    else:
        if not INT64_MIN <= value <= INT64_MAX:
            raise InputError(f"Time bound out of range: {raw!r}")
        return value
    try:
        dt = dtp.isoparse(raw)
    except (ValueError, OverflowError):
        raise InputError(f"Invalid time bound: {raw!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def format_timestamp(ts: int | None) -> str:
    if ts is None:
        return "Unknown"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
