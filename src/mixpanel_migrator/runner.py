import json, logging, time
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .core import MixpanelExporter
from .errors import MigrationError
from .ingest import DryRunQueue, PosthogBatchQueue, load_records
from .time_utils import format_date, parse_date, plan_chunks
from .users import USER_DELAY_FACTOR, load_users_csv

logger = logging.getLogger(__name__)


def build_exporter(cfg: Dict[str, Any]) -> MixpanelExporter:
    return MixpanelExporter(
        api_url=cfg["MIXPANEL_API_URL"],
        username=cfg["MIXPANEL_USERNAME"],
        password=cfg["MIXPANEL_PASSWORD"],
        project_id=str(cfg["MIXPANEL_PROJECT_ID"]),
        timeout=int(cfg.get("REQUEST_TIMEOUTS", 120)),
    )


def build_queue(cfg: Dict[str, Any]):
    if cfg.get("DRY_RUN", False):
        return DryRunQueue(sample_limit=int(cfg.get("REPORT_SAMPLE_LIMIT", 20)))
    return PosthogBatchQueue(
        api_key=cfg["POSTHOG_PROJECT_KEY"],
        host=cfg["POSTHOG_ENDPOINT"],
        batch_size=int(cfg.get("BATCH_SIZE", 100)),
        timeout=int(cfg.get("REQUEST_TIMEOUTS", 120)),
        max_retries=int(cfg.get("MAX_RETRIES", 5)),
        backoff=float(cfg.get("RETRY_BACKOFF_S", 1.5)),
    )


def reports_dir(cfg: Dict[str, Any]) -> Path:
    p = Path(cfg.get("REPORTS_DIR") or "migration_runs").expanduser()
    if not p.is_absolute():
        p = (Path.cwd() / p).resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


def close_queue(queue, failed: bool):
    """Flush and close the queue. When the run is already failing, a close
    error is logged instead of replacing the error in flight."""
    try:
        queue.close()
    except MigrationError as exc:
        if not failed:
            raise
        logger.error("Closing the ingestion queue failed after an earlier error: %s", exc)


def wait_for_settle(seconds: float, sleep=time.sleep):
    """Give PostHog time to process what was just flushed. Bounded: returns
    after `seconds` no matter what."""
    if not seconds or seconds <= 0:
        return
    logger.info("Waiting %.0fs for PostHog to finish processing imported events", seconds)
    print(f"[settle] waiting {seconds:.0f}s for PostHog to process the events (Ctrl+C to skip)")
    try:
        sleep(seconds)
    except KeyboardInterrupt:
        print("[settle] skipped")


def run_migration(cfg: Dict[str, Any], exporter: Optional[MixpanelExporter] = None, queue=None) -> Dict[str, Any]:
    """
    Chunk the date range, then per chunk (strictly one after the other):
    export + normalize + dedupe, then load into the queue.
    Any MigrationError aborts the run; the queue is still flushed/closed.
    """
    started_at = time.time()
    verbose = bool(cfg.get("VERBOSE", True))
    dry_run = bool(cfg.get("DRY_RUN", False))

    from_date = parse_date(cfg.get("FROM_DATE"))
    to_date = parse_date(cfg.get("TO_DATE"))
    chunk_size = int(cfg.get("CHUNK_SIZE_DAYS", 7))
    chunks = plan_chunks(from_date, to_date, chunk_size)

    if verbose:
        print(f"[plan] {len(chunks)} chunks of {chunk_size} days, {format_date(from_date)} → {format_date(to_date)}")

    owns_exporter = exporter is None
    exporter = exporter or build_exporter(cfg)
    queue = queue if queue is not None else build_queue(cfg)

    chunk_stats: List[Dict[str, Any]] = []
    total_read = total_skipped = total_dupes = total_kept = total_imported = 0

    failed = False
    try:
        for i, (start, end) in enumerate(chunks, 1):
            if verbose:
                print(f"[export] {format_date(start)} → {format_date(end)}")
            records, stats = exporter.export(start, end)

            stats.imported = load_records(
                queue, records,
                delay_ms=float(cfg.get("DELAY_MS", 1)),
                import_tag=cfg.get("IMPORT_TAG", "prod-import-1"),
            )

            total_read += stats.read
            total_skipped += stats.skipped
            total_dupes += stats.duplicates
            total_kept += stats.kept
            total_imported += stats.imported
            chunk_stats.append(stats.as_dict())

            logger.info(
                "chunk %d/%d done: read=%d skipped=%d duplicates=%d imported=%d",
                i, len(chunks), stats.read, stats.skipped, stats.duplicates, stats.imported,
            )
            if verbose:
                print(f"Completed chunk {i}/{len(chunks)} (imported {stats.imported}, total {total_imported})")
    except BaseException:
        failed = True
        raise
    finally:
        try:
            close_queue(queue, failed)
        finally:
            if owns_exporter:
                exporter.close()

    ended_at = time.time()

    summary = {
        "version": __version__,
        "started_at": started_at,
        "ended_at": ended_at,
        "duration_s": round(ended_at - started_at, 3),
        "source": {
            "api_url": cfg.get("MIXPANEL_API_URL"),
            "project_id": cfg.get("MIXPANEL_PROJECT_ID"),
            "from_date": format_date(from_date),
            "to_date": format_date(to_date),
        },
        "destination": {
            "endpoint": cfg.get("POSTHOG_ENDPOINT"),
        },
        "counters": {
            "events_read": total_read,
            "events_skipped": total_skipped,
            "duplicates_removed": total_dupes,
            "events_kept": total_kept,
            "events_imported": total_imported,
            "batches": list(getattr(queue, "batches", [])),
        },
        "chunks": chunk_stats,
        "samples": {
            "count": len(getattr(queue, "samples", [])),
            "events": list(getattr(queue, "samples", [])),
        },
        "settings": {
            "dry_run": dry_run,
            "chunk_size_days": chunk_size,
            "delay_ms": cfg.get("DELAY_MS"),
            "batch_size": cfg.get("BATCH_SIZE"),
            "import_tag": cfg.get("IMPORT_TAG"),
        },
    }

    name = time.strftime("run-%Y%m%d-%H%M%S.json", time.gmtime(ended_at))
    path = reports_dir(cfg) / name
    summary["report_path"] = str(path)
    if verbose:
        print(f"[report] writing JSON to: {path}")
    with path.open("w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)

    print(
        f"Done. read={total_read} skipped={total_skipped} duplicates={total_dupes} "
        f"imported={total_imported} dry_run={dry_run}"
    )

    if not dry_run:
        wait_for_settle(float(cfg.get("SETTLE_WAIT_S", 0) or 0))

    return summary


def run_user_import(cfg: Dict[str, Any], csv_path: str, queue=None) -> Dict[str, Any]:
    """Send one $identify per profile row of a Mixpanel people CSV, paced
    USER_DELAY_FACTOR times slower than events."""
    dry_run = bool(cfg.get("DRY_RUN", False))
    users, skipped = load_users_csv(csv_path)
    delay_ms = float(cfg.get("DELAY_MS", 1)) * USER_DELAY_FACTOR

    minutes = int(delay_ms * len(users) / 60000)
    print(
        f"[users] importing {len(users)} users from {csv_path} "
        f"(about {minutes} minutes, started {time.strftime('%H:%M:%S')})"
    )

    queue = queue if queue is not None else build_queue(cfg)
    failed = False
    try:
        imported = load_records(
            queue, users,
            delay_ms=delay_ms,
            import_tag=cfg.get("IMPORT_TAG", "prod-import-1"),
        )
    except BaseException:
        failed = True
        raise
    finally:
        close_queue(queue, failed)

    print(f"Done. users={imported} skipped={skipped} dry_run={dry_run}")
    if not dry_run:
        wait_for_settle(float(cfg.get("SETTLE_WAIT_S", 0) or 0))

    return {
        "users_imported": imported,
        "rows_skipped": skipped,
        "dry_run": dry_run,
        "samples": list(getattr(queue, "samples", [])),
    }
