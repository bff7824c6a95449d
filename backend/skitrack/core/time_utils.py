from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def seconds_to_hhmmss(total_seconds: int) -> str:
    """
    Convert total seconds (int) -> 'HH:MM:SS'.
    Example: 2732 -> '00:45:32'
    """
    total_seconds = int(total_seconds)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def ensure_utc(dt: datetime) -> datetime:
    """Return `dt` as an aware UTC datetime. Naive values are assumed UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso(ts: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (accepting a trailing 'Z') into aware UTC.

    Anything other than a string raises ValueError.
    """
    if ts is None or ts == "":
        return None
    if not isinstance(ts, str):
        raise ValueError(f"expected an ISO timestamp string, got {type(ts).__name__}")
    return ensure_utc(datetime.fromisoformat(ts.replace("Z", "+00:00")))


def to_local_datetime(dt: datetime, tz_name: str | None = None) -> datetime:
    """Convert a datetime (assume UTC if naive) to local or given tz.

    - If `tz_name` is 'local' or None: use system local timezone.
    - If `tz_name` is IANA tz name (e.g., 'Europe/Zurich'): use that.
    - Unknown zone names fall back to the system local timezone.
    """
    dt = ensure_utc(dt)
    if tz_name and tz_name != "local":
        try:
            return dt.astimezone(ZoneInfo(tz_name))
        except ZoneInfoNotFoundError:
            return dt.astimezone()
    return dt.astimezone()
