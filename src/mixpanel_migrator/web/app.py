import os
import json, socket
from pathlib import Path
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from mixpanel_migrator import __version__


# Where run reports are written by `mp-migrate run`.
# Default is ./migration_runs; override with MIGRATION_REPORTS_DIR.
def _get_reports_dir() -> Path:
    env_dir = os.getenv("MIGRATION_REPORTS_DIR")
    p = Path(env_dir).expanduser().resolve() if env_dir else Path("migration_runs").resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


app = FastAPI(title="Mixpanel Migrator UI", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)


# -------- Helpers --------
def _list_reports():
    files = sorted(_get_reports_dir().glob("run-*.json"), reverse=True)
    out = []
    for p in files:
        try:
            with p.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            # Ignore unreadable files, continue listing
            continue
        counters = data.get("counters", {})
        out.append({
            "id": p.name,
            "started_at": data.get("started_at"),
            "ended_at": data.get("ended_at"),
            "duration_s": data.get("duration_s"),
            "from_date": data.get("source", {}).get("from_date"),
            "to_date": data.get("source", {}).get("to_date"),
            "events_read": counters.get("events_read"),
            "events_skipped": counters.get("events_skipped"),
            "duplicates_removed": counters.get("duplicates_removed"),
            "events_imported": counters.get("events_imported"),
            "dry_run": data.get("settings", {}).get("dry_run"),
        })
    return out


def _report_path(report_id: str) -> Path:
    # Only bare report file names, never paths
    if Path(report_id).name != report_id or not report_id.endswith(".json"):
        raise HTTPException(status_code=404, detail="Report not found")
    path = _get_reports_dir() / report_id
    if not path.exists():
        raise HTTPException(status_code=404, detail="Report not found")
    return path


# -------- Routes --------
@app.get("/api/migration/runs")
def list_runs():
    return {"runs": _list_reports()}


@app.get("/api/migration/runs/{report_id}")
def get_run(report_id: str):
    with _report_path(report_id).open("r", encoding="utf-8") as f:
        data = json.load(f)
    return JSONResponse(data)


# -------- Entrypoint used by CLI --------
def _find_open_port(host: str, preferred: int, tries: int = 20) -> int:
    """
    Return `preferred` if free, otherwise the next available port within `tries`.
    Raises RuntimeError if none found.
    """
    candidates = [preferred] + list(range(preferred + 1, preferred + tries + 1))
    for p in candidates:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                s.bind((host, p))
                return p
            except OSError:
                continue
    raise RuntimeError(f"No free port found near {preferred}")


def start_ui(host: str = "127.0.0.1", port: int = 8010, reload: bool = False, auto_port: bool = True):
    chosen_port = _find_open_port(host, port, tries=30) if auto_port else port

    print("━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    print("Mixpanel Migrator UI")
    print(f"▶ URL:      http://{host}:{chosen_port}/api/migration/runs")
    print("Reports dir:", _get_reports_dir())
    print("━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")

    uvicorn.run("mixpanel_migrator.web.app:app", host=host, port=chosen_port, reload=reload)
