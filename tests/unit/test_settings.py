from pathlib import Path

import pytest

from mixpanel_migrator.errors import ConfigError
from mixpanel_migrator.settings import build_settings, config_to_dict, load_config_module

BASE = {
    "MIXPANEL_PROJECT_ID": "123",
    "MIXPANEL_USERNAME": "svc",
    "MIXPANEL_PASSWORD": "secret",
    "FROM_DATE": "2024-01-01",
    "TO_DATE": "2024-01-10",
    "POSTHOG_PROJECT_KEY": "phc_x",
}


def test_build_settings_applies_defaults():
    cfg = build_settings(BASE, environ={})

    assert cfg["CHUNK_SIZE_DAYS"] == 7
    assert cfg["DELAY_MS"] == 1.0
    assert cfg["MIXPANEL_API_URL"] == "https://data.mixpanel.com/api/2.0"


def test_environment_overrides_config():
    cfg = build_settings(BASE, environ={"MIXPANEL_PASSWORD": "from-env", "FROM_DATE": "ignored"})

    assert cfg["MIXPANEL_PASSWORD"] == "from-env"
    assert cfg["FROM_DATE"] == "2024-01-01"


def test_missing_required_settings():
    values = dict(BASE, MIXPANEL_USERNAME="", POSTHOG_PROJECT_KEY="")

    with pytest.raises(ConfigError, match="MIXPANEL_USERNAME.*POSTHOG_PROJECT_KEY"):
        build_settings(values, environ={})


def test_dry_run_does_not_need_posthog_key():
    cfg = build_settings(dict(BASE, POSTHOG_PROJECT_KEY="", DRY_RUN=True), environ={})

    assert cfg["DRY_RUN"] is True


def test_invalid_chunk_size():
    with pytest.raises(ConfigError):
        build_settings(dict(BASE, CHUNK_SIZE_DAYS="seven"), environ={})
    with pytest.raises(ConfigError):
        build_settings(dict(BASE, CHUNK_SIZE_DAYS=0), environ={})


def test_load_config_module(tmp_path: Path):
    path = tmp_path / "config.py"
    path.write_text('MIXPANEL_PROJECT_ID = "42"\nCHUNK_SIZE_DAYS = 3\nlowercase = 1\n', encoding="utf-8")

    values = config_to_dict(load_config_module(path))

    assert values == {"MIXPANEL_PROJECT_ID": "42", "CHUNK_SIZE_DAYS": 3}


def test_load_config_module_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config_module(tmp_path / "nope.py")


def test_custom_required_set_skips_mixpanel_settings():
    cfg = build_settings({"POSTHOG_PROJECT_KEY": "phc_x"}, environ={}, required=())

    assert cfg["POSTHOG_PROJECT_KEY"] == "phc_x"

    with pytest.raises(ConfigError, match="POSTHOG_PROJECT_KEY"):
        build_settings({}, environ={}, required=())
