import argparse, logging, os, sys
from pathlib import Path

from . import __version__
from .errors import MigrationError
from .runner import run_migration, run_user_import
from .settings import USERS_REQUIRED, build_settings, config_to_dict, load_config_module

DEFAULT_CONFIG = """\
# ==========================================
# Mixpanel -> PostHog Migration Config
# ==========================================
# Credentials below can also be supplied through environment variables of
# the same name; the environment wins.




# ---- Source (Mixpanel raw export API) -------------------------------------------------
MIXPANEL_API_URL    = "https://data.mixpanel.com/api/2.0"  # EU: https://data-eu.mixpanel.com/api/2.0
MIXPANEL_PROJECT_ID = ""
MIXPANEL_USERNAME   = ""   # service account username
MIXPANEL_PASSWORD   = ""   # service account secret

# Inclusive date range, YYYY-MM-DD. Start small on large projects.
FROM_DATE = ""  # e.g., "2024-01-01"
TO_DATE   = ""  # e.g., "2024-01-31"

# Days exported per request. Each chunk is held in memory before loading.
CHUNK_SIZE_DAYS = 7




# ---- Destination (PostHog) ------------------------------------------------------------
POSTHOG_PROJECT_KEY = ""                          # project API key (phc_...)
POSTHOG_ENDPOINT    = "https://us.i.posthog.com"  # EU: https://eu.i.posthog.com
IMPORT_TAG          = "prod-import-1"             # stored on every event as $go_flag




# ---- Pacing & reliability -------------------------------------------------------------
DELAY_MS         = 1      # pause between queued events
BATCH_SIZE       = 100
REQUEST_TIMEOUTS = 120    # seconds
MAX_RETRIES      = 5
RETRY_BACKOFF_S  = 1.5    # exponential




# ---- Safety --------------------------------------------------------------------
DRY_RUN = True      # True = export and transform only; do NOT send to PostHog
VERBOSE = True      # print progress
SETTLE_WAIT_S = 0   # seconds to wait after the run for PostHog to catch up
REPORTS_DIR = "migration_runs"
REPORT_SAMPLE_LIMIT = 20
"""

DEFAULT_README = """\
# Mixpanel -> PostHog Migrator

Moves raw Mixpanel event history into PostHog:
- exports the date range in chunks of `CHUNK_SIZE_DAYS` days
- drops duplicate events (same `$insert_id`) within a chunk
- skips events with no `distinct_id` or `time`
- renames events to the PostHog naming scheme
- sends with `historical_migration` enabled, pausing `DELAY_MS` between events

## 1) Configure

Edit `config.py`. Credentials may instead come from the environment
(`MIXPANEL_USERNAME`, `MIXPANEL_PASSWORD`, `MIXPANEL_PROJECT_ID`,
`POSTHOG_PROJECT_KEY`, ...).

## 2) Dry run

```bash
mp-migrate run --config mixpanel_migration_project/config.py --dry-run
```

## 3) Real run

Set `DRY_RUN = False`, then:

```bash
mp-migrate run --config mixpanel_migration_project/config.py
```

Events from the same `$insert_id` in *different* chunks are not deduplicated.
Re-running a chunk sends its events again.

## 4) Users (optional)

Export people from Mixpanel as CSV, then:

```bash
mp-migrate users --config mixpanel_migration_project/config.py --csv people.csv
```

## 5) Reports

```bash
mp-migrate ui --port 8010
```
"""


# Utility -------------------------------------------
def _write_if_missing(path: Path, content: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text(content, encoding="utf-8")


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Commands ------------------------------------------
def cmd_init(args: argparse.Namespace):
    project_dir = Path.cwd() / "mixpanel_migration_project"
    (project_dir / "migration_runs").mkdir(parents=True, exist_ok=True)

    _write_if_missing(project_dir / "config.py", DEFAULT_CONFIG)
    _write_if_missing(project_dir / "README.md", DEFAULT_README)

    print(f"Created/checked: {project_dir}")
    print("Next step: edit config.py with your details.")
    print("   Then run:")
    print("   mp-migrate run --config mixpanel_migration_project/config.py --dry-run")
    return 0


def cmd_run(args: argparse.Namespace):
    try:
        values = config_to_dict(load_config_module(args.config)) if args.config else {}
        if args.from_date:
            values["FROM_DATE"] = args.from_date
        if args.to_date:
            values["TO_DATE"] = args.to_date
        if args.chunk_days is not None:
            values["CHUNK_SIZE_DAYS"] = args.chunk_days
        if args.reports_dir:
            values["REPORTS_DIR"] = str(Path(args.reports_dir).expanduser().resolve())
        if args.dry_run:
            values["DRY_RUN"] = True

        settings = build_settings(values)
        _configure_logging(bool(settings.get("VERBOSE", True)))
        run_migration(settings)
    except MigrationError as exc:
        print(f"Error [{exc.error_code}]: {exc}", file=sys.stderr)
        imported = getattr(exc, "imported", None)
        if imported:
            print(f"{imported} events of the failing chunk were queued before the error.", file=sys.stderr)
        return 1
    return 0


def cmd_users(args: argparse.Namespace):
    try:
        values = config_to_dict(load_config_module(args.config)) if args.config else {}
        if args.dry_run:
            values["DRY_RUN"] = True

        settings = build_settings(values, required=USERS_REQUIRED)
        _configure_logging(bool(settings.get("VERBOSE", True)))
        run_user_import(settings, args.csv)
    except MigrationError as exc:
        print(f"Error [{exc.error_code}]: {exc}", file=sys.stderr)
        imported = getattr(exc, "imported", None)
        if imported:
            print(f"{imported} users were queued before the error.", file=sys.stderr)
        return 1
    return 0


def cmd_ui(args: argparse.Namespace):
    default_reports = Path.cwd() / "migration_runs"
    reports_dir = Path(args.reports_dir).expanduser() if args.reports_dir else default_reports
    os.environ["MIGRATION_REPORTS_DIR"] = str(reports_dir.resolve())

    from mixpanel_migrator.web.app import start_ui
    start_ui(host=args.host, port=args.port, reload=False)
    return 0


# CLI parser ----------------------------------------
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mp-migrate", description="Mixpanel to PostHog event migration")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd")

    sp = sub.add_parser("init", help="Create workspace (config.py, README.md)")
    sp.set_defaults(fn=cmd_init)

    sp = sub.add_parser("run", help="Run migration")
    sp.add_argument("--config", help="Path to config.py")
    sp.add_argument("--from-date", help="First day to export (YYYY-MM-DD)")
    sp.add_argument("--to-date", help="Last day to export (YYYY-MM-DD), inclusive")
    sp.add_argument("--chunk-days", type=int, help="Days per export request")
    sp.add_argument("--dry-run", action="store_true", help="Force dry run")
    sp.add_argument("--reports-dir", help="Override reports directory for this run")
    sp.set_defaults(fn=cmd_run)

    sp = sub.add_parser("users", help="Import user profiles from a Mixpanel people CSV export")
    sp.add_argument("--csv", required=True, help="Path to the people CSV (needs a $distinct_id column)")
    sp.add_argument("--config", help="Path to config.py")
    sp.add_argument("--dry-run", action="store_true", help="Force dry run")
    sp.set_defaults(fn=cmd_users)

    sp = sub.add_parser("ui", help="Launch reports dashboard")
    sp.add_argument("--host", default="127.0.0.1")
    sp.add_argument("--port", type=int, default=8010)
    sp.add_argument("--reports-dir", help="Directory with run reports (defaults to ./migration_runs)")
    sp.set_defaults(fn=cmd_ui)
    return p


def cli(argv=None):
    p = build_parser()
    args = p.parse_args(argv)
    if hasattr(args, "fn"):
        return args.fn(args)
    p.print_help()
    return 0


def main():
    sys.exit(cli())


if __name__ == "__main__":
    main()
