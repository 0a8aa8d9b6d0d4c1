import importlib.util, os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .core import DEFAULT_API_URL
from .errors import ConfigError
from .ingest import DEFAULT_DELAY_MS, DEFAULT_HOST, DEFAULT_IMPORT_TAG

DEFAULTS: Dict[str, Any] = {
    "MIXPANEL_API_URL": DEFAULT_API_URL,
    "MIXPANEL_PROJECT_ID": "",
    "MIXPANEL_USERNAME": "",
    "MIXPANEL_PASSWORD": "",
    "FROM_DATE": "",
    "TO_DATE": "",
    "CHUNK_SIZE_DAYS": 7,
    "POSTHOG_PROJECT_KEY": "",
    "POSTHOG_ENDPOINT": DEFAULT_HOST,
    "DELAY_MS": DEFAULT_DELAY_MS,
    "BATCH_SIZE": 100,
    "REQUEST_TIMEOUTS": 120,
    "MAX_RETRIES": 5,
    "RETRY_BACKOFF_S": 1.5,
    "IMPORT_TAG": DEFAULT_IMPORT_TAG,
    "SETTLE_WAIT_S": 0,
    "DRY_RUN": False,
    "VERBOSE": True,
    "REPORTS_DIR": "migration_runs",
    "REPORT_SAMPLE_LIMIT": 20,
}

# Credentials and endpoints can come from the environment instead of config.py
ENV_OVERRIDES = (
    "MIXPANEL_API_URL", "MIXPANEL_PROJECT_ID", "MIXPANEL_USERNAME", "MIXPANEL_PASSWORD",
    "POSTHOG_PROJECT_KEY", "POSTHOG_ENDPOINT",
)

REQUIRED = ("MIXPANEL_PROJECT_ID", "MIXPANEL_USERNAME", "MIXPANEL_PASSWORD", "FROM_DATE", "TO_DATE")
# A users import only talks to PostHog
USERS_REQUIRED: Tuple[str, ...] = ()


def load_config_module(path: str | Path):
    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")
    spec = importlib.util.spec_from_file_location("user_config", str(p))
    mod = importlib.util.module_from_spec(spec)  # type: ignore
    spec.loader.exec_module(mod)                 # type: ignore
    return mod


def config_to_dict(mod) -> Dict[str, Any]:
    # pull UPPERCASE names only
    return {k: getattr(mod, k) for k in dir(mod) if k.isupper()}


def build_settings(
    values: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    required: Sequence[str] = REQUIRED,
) -> Dict[str, Any]:
    """Defaults <- config values <- environment. Raises ConfigError when a
    required value is missing after all layers are applied."""
    cfg = dict(DEFAULTS)
    cfg.update({k: v for k, v in (values or {}).items() if v is not None})
    env = os.environ if environ is None else environ
    for key in ENV_OVERRIDES:
        if env.get(key):
            cfg[key] = env[key]

    missing: List[str] = [k for k in required if not cfg.get(k)]
    if not cfg.get("DRY_RUN") and not cfg.get("POSTHOG_PROJECT_KEY"):
        missing.append("POSTHOG_PROJECT_KEY")
    if missing:
        raise ConfigError(f"Missing required settings: {', '.join(missing)}")

    try:
        for key in ("CHUNK_SIZE_DAYS", "BATCH_SIZE", "REQUEST_TIMEOUTS", "MAX_RETRIES", "REPORT_SAMPLE_LIMIT"):
            cfg[key] = int(cfg[key])
        for key in ("DELAY_MS", "RETRY_BACKOFF_S", "SETTLE_WAIT_S"):
            cfg[key] = float(cfg[key])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc
    if cfg["CHUNK_SIZE_DAYS"] <= 0:
        raise ConfigError("CHUNK_SIZE_DAYS must be greater than 0")
    return cfg
