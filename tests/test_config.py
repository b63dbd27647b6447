from pathlib import Path

import pytest

from config import load_config

ENV_NAMES = (
    "ALARM_STORAGE_PATH",
    "ALARM_TICK_INTERVAL_MS",
    "ALARM_DEFAULT_SNOOZE_MIN",
    "ALARM_DEFAULT_DURATION_S",
    "INPUT_DEVICE_INDEX",
    "FALLBACK_TONE_GAIN",
    "ANNOUNCE_ALARMS",
    "DEBUG",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    config = load_config(tmp_path / ".env")

    assert config.alarms_path == Path("data/alarms.json")
    assert config.tick_interval_ms == 1000
    assert config.default_snooze_min == 5
    assert config.default_duration_s == 30
    assert config.input_device_index is None
    assert config.fallback_tone_hz == 800.0
    assert config.fallback_tone_gain == 0.3
    assert config.announce_alarms is True
    assert config.log_level == "INFO"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("ALARM_STORAGE_PATH", str(tmp_path / "a.json"))
    monkeypatch.setenv("ALARM_TICK_INTERVAL_MS", "5000")
    monkeypatch.setenv("ALARM_DEFAULT_SNOOZE_MIN", "9")
    monkeypatch.setenv("INPUT_DEVICE_INDEX", "2")
    monkeypatch.setenv("FALLBACK_TONE_GAIN", "3")
    monkeypatch.setenv("DEBUG", "yes")

    config = load_config(tmp_path / ".env")

    assert config.alarms_path == tmp_path / "a.json"
    assert config.tick_interval_ms == 1000
    assert config.default_snooze_min == 9
    assert config.input_device_index == 2
    assert config.fallback_tone_gain == 1.0
    assert config.log_level == "DEBUG"


def test_malformed_number_names_variable(tmp_path, monkeypatch):
    monkeypatch.setenv("ALARM_DEFAULT_DURATION_S", "half a minute")

    with pytest.raises(ValueError, match="ALARM_DEFAULT_DURATION_S"):
        load_config(tmp_path / ".env")
