from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

from .errors import ConfigError

DATE_FORMAT = "%Y-%m-%d"

Chunk = Tuple[date, date]


def parse_date(value: str | None) -> date:
    """Parse 'YYYY-MM-DD' into a date. Raises ConfigError on anything else."""
    if not value or not isinstance(value, str):
        raise ConfigError(f"Missing date (expected YYYY-MM-DD, got {value!r})")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise ConfigError(f"Invalid date {value!r} (expected YYYY-MM-DD)") from exc


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def epoch_seconds_to_utc(value) -> Optional[datetime]:
    """Seconds since epoch -> aware UTC datetime. Fractional seconds are truncated.
    Returns None for non-numeric input (bools included)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def plan_chunks(from_date: date, to_date: date, chunk_size_days: int) -> List[Chunk]:
    """Split [from_date, to_date] (both inclusive) into contiguous chunks of
    chunk_size_days days. Only the last chunk may be shorter."""
    if chunk_size_days < 1:
        raise ConfigError(f"Chunk size must be at least 1 day (got {chunk_size_days})")
    if from_date > to_date:
        raise ConfigError(f"from_date {format_date(from_date)} is after to_date {format_date(to_date)}")

    chunks: List[Chunk] = []
    span = timedelta(days=chunk_size_days - 1)
    cursor = from_date
    while cursor <= to_date:
        end = min(cursor + span, to_date)
        chunks.append((cursor, end))
        cursor = end + timedelta(days=1)
    return chunks
