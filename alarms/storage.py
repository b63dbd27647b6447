from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .clock import normalize_hhmm
from .errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "Alarm"
DEFAULT_DURATION_S = 30


def coerce_duration(value, default: int = DEFAULT_DURATION_S) -> int:
    """Positive whole seconds, otherwise ``default``. Fractional values are rejected, not truncated."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not number.is_integer() or number <= 0:
        return default
    return int(number)


def clean_label(value: Optional[str]) -> str:
    return (value or "").strip() or DEFAULT_LABEL


@dataclass
class Alarm:
    id: str
    label: str
    time: str
    duration: int = DEFAULT_DURATION_S
    sound_clip: Optional[bytes] = field(default=None, repr=False)
    triggered: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def has_clip(self) -> bool:
        return bool(self.sound_clip)

    def to_record(self) -> dict:
        clip = base64.b64encode(self.sound_clip).decode("ascii") if self.sound_clip else None
        return {
            "id": self.id,
            "label": self.label,
            "time": self.time,
            "duration": self.duration,
            "created_at": self.created_at.isoformat(),
            "sound_clip": clip,
        }

    @classmethod
    def from_record(cls, data: dict) -> "Alarm":
        alarm_id = data.get("id")
        time_raw = data.get("time")
        if not alarm_id or not time_raw:
            raise ValueError("Alarm record missing id/time fields")
        clip_raw = data.get("sound_clip")
        try:
            clip = base64.b64decode(clip_raw, validate=True) if clip_raw else None
        except binascii.Error as exc:
            raise ValueError(f"Alarm record {alarm_id} has a corrupt sound clip") from exc
        created_raw = data.get("created_at")
        return cls(
            id=str(alarm_id),
            label=clean_label(str(data.get("label") or "")),
            time=normalize_hhmm(str(time_raw)),
            duration=coerce_duration(data.get("duration")),
            sound_clip=clip,
            triggered=False,
            created_at=datetime.fromisoformat(created_raw) if created_raw else datetime.now(),
        )


class JsonFileStorage:
    """Keeps alarm records as a JSON list in a single file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[dict]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to load alarms from {self.path}: {exc}") from exc
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise PersistenceError(f"Unexpected alarm payload in {self.path}")
        return payload

    def save(self, records: List[dict]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to save alarms to {self.path}: {exc}") from exc


def decode_records(records: List[dict]) -> List[Alarm]:
    alarms: List[Alarm] = []
    for item in records or []:
        try:
            alarms.append(Alarm.from_record(item))
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Skipping alarm record due to parse error: %s", exc)
    return alarms
