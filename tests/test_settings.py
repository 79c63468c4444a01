import json
from pathlib import Path

import pytest

from plainstep.errors import PlainstepError
from plainstep.settings import RunSettings, apply_overrides, load_settings, save_settings


def test_run_settings_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    original = RunSettings(
        browser="firefox",
        headless=True,
        output_dir="/tmp/reports",
        datatable="/tmp/users.csv",
        viewport=(1440, 900),
        locate_retry_delays=(0.5, 1.0),
        command_delay=0.25,
        demo=True,
    )
    assert save_settings(original, config_path) == config_path
    assert load_settings(config_path) == original
    assert json.loads(config_path.read_text(encoding="utf-8"))["viewport"] == [1440, 900]
    assert not list(tmp_path.glob("*.tmp"))


def test_save_settings_reports_unwritable_location(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-folder"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(PlainstepError, match="Could not save settings"):
        save_settings(RunSettings(), blocker / "config.json")
    assert blocker.read_text(encoding="utf-8") == ""


def test_run_settings_load_fallbacks(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    assert load_settings(config_path) == RunSettings()
    config_path.write_text("{invalid", encoding="utf-8")
    assert load_settings(config_path) == RunSettings()
    config_path.write_text("[1, 2]", encoding="utf-8")
    assert load_settings(config_path) == RunSettings()


def test_run_settings_field_fallbacks(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        '{"browser": "netscape", "viewport": [0, 10], "locate_retry_delays": [1, -2],'
        ' "command_delay": "soon", "headless": true}',
        encoding="utf-8",
    )
    loaded = load_settings(config_path)
    defaults = RunSettings()
    assert loaded.browser == defaults.browser
    assert loaded.viewport == defaults.viewport
    assert loaded.locate_retry_delays == defaults.locate_retry_delays
    assert loaded.command_delay == defaults.command_delay
    assert loaded.headless


def test_apply_overrides_ignores_unset_and_unknown_values() -> None:
    base = RunSettings(browser="webkit", output_dir="/reports")
    updated = apply_overrides(base, {"browser": None, "headless": True, "unknown": 1, "output_dir": "/elsewhere"})
    assert updated.browser == "webkit"
    assert updated.headless
    assert updated.output_dir == "/elsewhere"
    assert base.output_dir == "/reports"
