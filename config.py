import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


@dataclass
class Config:
    alarms_path: Path
    tick_interval_ms: int
    default_snooze_min: int
    default_duration_s: int
    output_target_rate: int
    input_target_rate: int
    input_device_index: Optional[int]
    max_record_seconds: int
    fallback_tone_hz: float
    fallback_tone_ms: int
    fallback_tone_gain: float
    announce_alarms: bool
    debug: bool
    log_level: str
    log_dir: Path


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    tick_interval_ms = min(1000, max(200, _get_env_int("ALARM_TICK_INTERVAL_MS", 1000)))
    input_device_index_env = os.getenv("INPUT_DEVICE_INDEX")
    input_device_index = _get_env_int("INPUT_DEVICE_INDEX", 0) if input_device_index_env else None
    debug = _get_env_bool("DEBUG", False)
    log_level = "DEBUG" if debug else os.getenv("LOG_LEVEL", "INFO").upper()

    return Config(
        alarms_path=Path(os.getenv("ALARM_STORAGE_PATH", "data/alarms.json")),
        tick_interval_ms=tick_interval_ms,
        default_snooze_min=max(1, _get_env_int("ALARM_DEFAULT_SNOOZE_MIN", 5)),
        default_duration_s=max(1, _get_env_int("ALARM_DEFAULT_DURATION_S", 30)),
        output_target_rate=_get_env_int("OUTPUT_TARGET_RATE", 24000),
        input_target_rate=_get_env_int("INPUT_TARGET_RATE", 16000),
        input_device_index=input_device_index,
        max_record_seconds=_get_env_int("MAX_RECORD_SECONDS", 60),
        fallback_tone_hz=_get_env_float("FALLBACK_TONE_HZ", 800.0),
        fallback_tone_ms=_get_env_int("FALLBACK_TONE_MS", 500),
        fallback_tone_gain=min(1.0, max(0.0, _get_env_float("FALLBACK_TONE_GAIN", 0.3))),
        announce_alarms=_get_env_bool("ANNOUNCE_ALARMS", True),
        debug=debug,
        log_level=log_level,
        log_dir=Path(os.getenv("LOG_DIR", "logs")),
    )


def setup_logging(log_level: str = "INFO", logs_dir: Path = Path("logs")) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    log_path = logs_dir / "alarm_clock.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
