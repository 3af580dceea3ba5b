"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from slotengine.config import GOOGLE_CALENDAR_SCOPES, AppConfig, SearchDefaults


def test_defaults():
    config = AppConfig()

    assert config.timezone == "Asia/Kolkata"
    assert config.google.calendar_id == "primary"
    assert config.google.scopes == GOOGLE_CALENDAR_SCOPES
    assert config.defaults.result_cap == 5
    assert config.defaults.exploration_cap == 10
    assert config.defaults.step_minutes == 30


def test_load_from_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "timezone: Europe/Berlin\n"
        "google:\n"
        "  client_id: my-client\n"
        "  client_secret: my-secret\n"
        "  calendar_id: team@example.com\n"
        "defaults:\n"
        "  duration_minutes: 45\n"
        "  window_days: 14\n",
        encoding="utf-8",
    )

    config = AppConfig.load_from_yaml(config_path)

    assert config.timezone == "Europe/Berlin"
    assert config.google.client_id == "my-client"
    assert config.google.calendar_id == "team@example.com"
    assert config.defaults.duration_minutes == 45
    assert config.defaults.window_days == 14
    assert config.defaults.end_hour == 18


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="config.example.yaml"):
        AppConfig.load_from_yaml(tmp_path / "missing.yaml")


def test_invalid_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("timezone: [unclosed\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML"):
        AppConfig.load_from_yaml(config_path)


def test_root_must_be_mapping(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        AppConfig.load_from_yaml(config_path)


def test_unknown_timezone_rejected():
    with pytest.raises(ValidationError, match="Unknown timezone"):
        AppConfig(timezone="Moon/Tranquility")


@pytest.mark.parametrize(
    "overrides",
    [
        {"duration_minutes": 0},
        {"start_hour": 24},
        {"end_hour": -1},
        {"result_cap": 6, "exploration_cap": 5},
    ],
)
def test_invalid_search_defaults(overrides):
    with pytest.raises(ValidationError):
        SearchDefaults(**overrides)
