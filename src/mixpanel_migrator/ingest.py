from __future__ import annotations
import json, logging, random, time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import requests

from .core import NormalizedRecord
from .errors import LoadError
from .mapping import map_event_name

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://us.i.posthog.com"
RETRYABLE_STATUS_CODES = (408, 429, 500, 502, 503, 504)

# Delay between queued events to stay under PostHog's ingestion limits
DEFAULT_DELAY_MS = 1
DEFAULT_IMPORT_TAG = "prod-import-1"
# Property key used by earlier imports; kept so existing filters keep matching
IMPORT_FLAG_KEY = "$go_flag"


@dataclass
class Capture:
    distinct_id: str
    event: str
    timestamp: datetime
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        props = dict(self.properties)
        props["distinct_id"] = self.distinct_id
        return {
            "event": self.event,
            "distinct_id": self.distinct_id,
            "properties": props,
            "timestamp": self.timestamp.isoformat(),
        }


def batch_url(host: str) -> str:
    return f"{(host or DEFAULT_HOST).rstrip('/')}/batch/"


# ---------- Queues ----------
class PosthogBatchQueue:
    """
    Buffers captures and ships them to PostHog's /batch/ endpoint with the
    historical_migration flag set. Retries throttling and server errors
    with exponential backoff; anything else raises LoadError.
    """

    def __init__(
        self,
        api_key: str,
        host: str = DEFAULT_HOST,
        batch_size: int = 100,
        timeout: int = 30,
        max_retries: int = 5,
        backoff: float = 1.5,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.url = batch_url(host)
        self.batch_size = max(1, int(batch_size))
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self.session = session or requests.Session()
        self.buffer: List[Capture] = []
        self.sent = 0
        self.batches: List[int] = []

    def enqueue(self, capture: Capture):
        self.buffer.append(capture)
        if len(self.buffer) >= self.batch_size:
            self.flush()

    def flush(self):
        if not self.buffer:
            return
        # A batch is attempted once; on failure it is dropped, not resent by close()
        batch, self.buffer = self.buffer, []
        self.send_batch([c.to_payload() for c in batch])
        self.sent += len(batch)
        self.batches.append(len(batch))
        logger.info("[ingest] sent %d (total %d)", len(batch), self.sent)

    def send_batch(self, events: List[Dict[str, Any]]):
        payload = {"api_key": self.api_key, "historical_migration": True, "batch": events}
        tries = 0
        while True:
            tries += 1
            try:
                resp = self.session.post(self.url, json=payload, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as exc:
                if tries < self.max_retries:
                    self._pause(tries, str(exc))
                    continue
                raise LoadError(f"Batch failed after {tries} attempts: {exc}") from exc
            if resp.ok:
                return
            if resp.status_code in RETRYABLE_STATUS_CODES and tries < self.max_retries:
                self._pause(tries, str(resp.status_code))
                continue
            raise LoadError(f"Batch failed {resp.status_code}: {resp.text[:400]}")

    def _pause(self, tries: int, reason: str):
        sleep_s = (self.backoff ** tries) + random.random()
        logger.warning("[batch] retry %d: %s, sleeping %.2fs", tries, reason, sleep_s)
        time.sleep(sleep_s)

    def close(self):
        try:
            self.flush()
        finally:
            self.session.close()


class DryRunQueue:
    """Counts captures without sending anything; keeps a few samples for the report."""

    def __init__(self, sample_limit: int = 20):
        self.sample_limit = sample_limit
        self.samples: List[Dict[str, Any]] = []
        self.sent = 0
        self.batches: List[int] = []

    def enqueue(self, capture: Capture):
        self.sent += 1
        if len(self.samples) < self.sample_limit:
            # round-trip through JSON so later mutation can't leak into the report
            self.samples.append(json.loads(json.dumps(capture.to_payload(), default=str)))

    def close(self):
        pass


# ---------- Load ----------
def to_capture(record: NormalizedRecord, import_tag: str = DEFAULT_IMPORT_TAG) -> Capture:
    props = dict(record.properties)
    props["$geoip_disable"] = True
    props[IMPORT_FLAG_KEY] = import_tag
    return Capture(
        distinct_id=record.distinct_id,
        event=map_event_name(record.event, record.properties),
        timestamp=record.time,
        properties=props,
    )


def load_records(
    queue,
    records: Iterable[NormalizedRecord],
    delay_ms: float = DEFAULT_DELAY_MS,
    import_tag: str = DEFAULT_IMPORT_TAG,
) -> int:
    """Offer each record to the queue once, in order, pausing delay_ms between
    submissions. Stops at the first rejected record (LoadError carries the
    number already submitted)."""
    imported = 0
    for record in records:
        capture = to_capture(record, import_tag)
        try:
            queue.enqueue(capture)
        except LoadError as exc:
            raise LoadError(f"Error importing event {capture.event!r}: {exc}", imported=imported) from exc
        except requests.RequestException as exc:
            raise LoadError(f"Error importing event {capture.event!r}: {exc}", imported=imported) from exc
        imported += 1
        if delay_ms:
            time.sleep(delay_ms / 1000.0)
    return imported
