"""Mixpanel people export (CSV) -> PostHog $identify events that $set profile properties."""
from __future__ import annotations
import csv, logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .core import NormalizedRecord, lib_version_tag
from .errors import ConfigError

logger = logging.getLogger(__name__)

IDENTIFY_EVENT = "$identify"
ID_COLUMNS = ("$distinct_id", "distinct_id")

# Mixpanel reserved profile properties and their PostHog person property names
PROFILE_RENAMES: Dict[str, str] = {
    "$email": "email",
    "$name": "name",
    "$first_name": "first_name",
    "$last_name": "last_name",
    "$phone": "phone",
    "$avatar": "avatar",
    "$created": "created_at",
}

# Profile imports are paced slower than events
USER_DELAY_FACTOR = 5


def _id_column(fieldnames: Optional[List[str]]) -> str:
    for name in ID_COLUMNS:
        if fieldnames and name in fieldnames:
            return name
    raise ConfigError(f"Users CSV must have a $distinct_id column (got {fieldnames})")


def profile_properties(row: Dict[str, Any], id_column: str) -> Dict[str, Any]:
    props: Dict[str, Any] = {}
    for k, v in row.items():
        if k is None or k == id_column:
            continue
        v = (v or "").strip()
        if not v:
            continue
        props[PROFILE_RENAMES.get(k, k)] = v
    return props


def load_users_csv(
    path: str | Path,
    lib_version: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[NormalizedRecord], int]:
    """
    Read a Mixpanel people CSV export.
    Returns (records, skipped): one $identify record per row with a
    distinct id, and the number of rows that had none.
    """
    p = Path(path).expanduser().resolve()
    if not p.is_file():
        raise ConfigError(f"Users CSV not found: {p}")

    ts = now or datetime.now(timezone.utc)
    version = lib_version or lib_version_tag()
    records: List[NormalizedRecord] = []
    skipped = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        id_column = _id_column(reader.fieldnames)
        for row in reader:
            distinct_id = (row.get(id_column) or "").strip()
            if not distinct_id:
                skipped += 1
                continue
            records.append(NormalizedRecord(
                event=IDENTIFY_EVENT,
                distinct_id=distinct_id,
                time=ts,
                properties={"$lib_version": version, "$set": profile_properties(row, id_column)},
            ))
    if skipped:
        logger.info("Skipped %d user rows with no distinct id", skipped)
    return records, skipped
