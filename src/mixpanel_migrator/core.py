from __future__ import annotations
import base64, codecs, json, logging, re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

import requests

from . import __version__
from .errors import DecodeError, ExtractionError
from .time_utils import epoch_seconds_to_utc, format_date

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://data.mixpanel.com/api/2.0"
# Same marker as earlier imports so existing PostHog filters keep matching
LIB_NAME = "stablecog/mp-to-ph"

# Mixpanel-internal event names that have a canonical PostHog equivalent
EVENT_RENAMES: Dict[str, str] = {
    "Pageview": "$pageview",
}

# Mixpanel diagnostics with no meaning in PostHog
DROPPED_PROPERTIES: Set[str] = {
    "$mp_api_endpoint", "$mp_api_timestamp_ms", "mp_processing_time_ms",
}

_WHITESPACE = re.compile(r"\s*")

# Largest single export value we wait for before declaring the stream broken
MAX_PENDING_CHARS = 8 * 1024 * 1024


@dataclass
class NormalizedRecord:
    event: str
    distinct_id: str
    time: datetime
    properties: Dict[str, Any] = field(default_factory=dict)
    insert_id: str = ""


@dataclass
class ChunkStats:
    start: Optional[date] = None
    end: Optional[date] = None
    read: int = 0
    skipped: int = 0
    duplicates: int = 0
    kept: int = 0
    imported: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "start": format_date(self.start) if self.start else None,
            "end": format_date(self.end) if self.end else None,
            "read": self.read,
            "skipped": self.skipped,
            "duplicates": self.duplicates,
            "kept": self.kept,
            "imported": self.imported,
        }


# ---------- Endpoints ----------
def export_url(api_url: str) -> str:
    return f"{(api_url or DEFAULT_API_URL).rstrip('/')}/export"

def basic_auth_header(username: str, password: str) -> Dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}

def lib_version_tag(version: str = __version__) -> str:
    return f"{LIB_NAME}@{version}"


# ---------- Stream decoding ----------
def iter_text(byte_chunks: Iterable[bytes]) -> Iterator[str]:
    """Decode UTF-8 byte pieces into text pieces, tolerating multi-byte
    characters split across piece boundaries."""
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        for piece in byte_chunks:
            if piece:
                yield decoder.decode(piece)
        yield decoder.decode(b"", final=True)
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Export stream is not valid UTF-8: {exc}") from exc

def _may_continue(buf: str, exc: json.JSONDecodeError) -> bool:
    # A value cut off at the end of the buffer fails inside its last token
    # (string, number or literal), and no token contains a raw newline.
    return buf.find("\n", exc.pos) == -1


def iter_json_values(pieces: Iterable[str], max_pending: int = MAX_PENDING_CHARS) -> Iterator[Any]:
    """
    Yield JSON values one at a time from a stream of concatenated values.
    The Mixpanel export is not a JSON array: objects follow each other,
    usually (but not necessarily) one per line. Values may span pieces,
    up to max_pending characters.
    Raises DecodeError for a malformed or truncated value.
    """
    decoder = json.JSONDecoder()
    it = iter(pieces)
    buf = ""
    pos = 0
    exhausted = False

    while True:
        pos = _WHITESPACE.match(buf, pos).end()
        if pos >= len(buf):
            if exhausted:
                return
            try:
                buf, pos = next(it), 0
            except StopIteration:
                exhausted = True
            continue
        try:
            value, end = decoder.raw_decode(buf, pos)
        except json.JSONDecodeError as exc:
            if exhausted or not _may_continue(buf, exc):
                raise DecodeError(f"Malformed JSON in export stream: {exc.msg} (offset {exc.pos})") from exc
            if len(buf) - pos > max_pending:
                raise DecodeError(f"Export value exceeds {max_pending} characters without completing") from exc
            # Value continues in the next piece
            try:
                buf, pos = buf[pos:] + next(it), 0
            except StopIteration:
                exhausted = True
            continue
        yield value
        pos = end


# ---------- Transform ----------
def normalize_record(raw: Dict[str, Any], lib_version: str) -> Optional[NormalizedRecord]:
    """
    Turn one raw export object into a NormalizedRecord, or return None when
    distinct_id or time is missing or of the wrong type.
    - distinct_id / time / $insert_id are lifted out of the properties
    - mp_lib becomes $lib ("<value>-imported")
    - Mixpanel diagnostics are dropped, everything else passes through
    """
    event = raw.get("event")
    event = event if isinstance(event, str) else ""
    event = EVENT_RENAMES.get(event, event)

    props_in = raw.get("properties")
    if not isinstance(props_in, dict):
        props_in = {}

    props: Dict[str, Any] = {"$lib_version": lib_version}
    distinct_id = ""
    ts: Optional[datetime] = None
    insert_id = ""

    for k, v in props_in.items():
        if k == "distinct_id":
            distinct_id = v if isinstance(v, str) else ""
        elif k == "time":
            ts = epoch_seconds_to_utc(v)
        elif k == "$insert_id":
            insert_id = v if isinstance(v, str) else ""
        elif k == "mp_lib":
            props["$lib"] = f"{v}-imported"
        elif k in DROPPED_PROPERTIES:
            continue
        else:
            props[k] = v

    if not distinct_id or ts is None:
        return None

    return NormalizedRecord(event=event, distinct_id=distinct_id, time=ts, properties=props, insert_id=insert_id)


class Deduplicator:
    """First-seen-wins filter on $insert_id. Use one instance per chunk."""

    def __init__(self):
        self.seen: Set[str] = set()
        self.duplicates = 0

    def accept(self, record: NormalizedRecord) -> bool:
        # No insert_id: nothing to compare against, always forward
        if not record.insert_id:
            return True
        if record.insert_id in self.seen:
            self.duplicates += 1
            return False
        self.seen.add(record.insert_id)
        return True


def dedupe(records: Iterable[NormalizedRecord]) -> Tuple[List[NormalizedRecord], int]:
    dd = Deduplicator()
    out = [r for r in records if dd.accept(r)]
    return out, dd.duplicates


# ---------- Export ----------
class MixpanelExporter:
    """Pulls one date range from the Mixpanel raw export API per call."""

    def __init__(
        self,
        api_url: str,
        username: str,
        password: str,
        project_id: str,
        version: str = __version__,
        timeout: int = 120,
        session: Optional[requests.Session] = None,
    ):
        self.url = export_url(api_url)
        self.headers = basic_auth_header(username, password)
        self.project_id = project_id
        self.lib_version = lib_version_tag(version)
        self.timeout = timeout
        self.session = session or requests.Session()

    def close(self):
        self.session.close()

    def _iter_body(self, resp) -> Iterator[bytes]:
        try:
            yield from resp.iter_content(chunk_size=64 * 1024)
        except requests.RequestException as exc:
            raise ExtractionError(f"Export stream interrupted: {exc}") from exc

    def export(self, start: date, end: date) -> Tuple[List[NormalizedRecord], ChunkStats]:
        """Export [start, end] (inclusive), normalized and deduplicated.
        The whole chunk is materialized before returning."""
        params = {
            "from_date": format_date(start),
            "to_date": format_date(end),
            "project_id": self.project_id,
        }
        try:
            resp = self.session.get(self.url, params=params, headers=self.headers, timeout=self.timeout, stream=True)
        except requests.RequestException as exc:
            raise ExtractionError(f"Export request failed: {exc}") from exc

        stats = ChunkStats(start=start, end=end)
        dd = Deduplicator()
        out: List[NormalizedRecord] = []
        try:
            if resp.status_code != 200:
                raise ExtractionError(f"Export failed {resp.status_code}: {resp.text[:400]}", status=resp.status_code)

            for raw in iter_json_values(iter_text(self._iter_body(resp))):
                stats.read += 1
                if not isinstance(raw, dict):
                    raise DecodeError(f"Expected a JSON object in export stream, got {type(raw).__name__}")
                rec = normalize_record(raw, self.lib_version)
                if rec is None:
                    stats.skipped += 1
                    logger.info("Skipping event with no distinct_id or time: %r", raw.get("event"))
                    continue
                if dd.accept(rec):
                    out.append(rec)
        finally:
            resp.close()

        stats.duplicates = dd.duplicates
        stats.kept = len(out)
        if dd.duplicates:
            logger.info("Deduplicated events: duplicates_removed=%d final_count=%d", dd.duplicates, len(out))
        return out, stats
