from __future__ import annotations

import logging
import uuid
from datetime import datetime
from threading import Lock
from typing import List, Optional, Protocol

from .clock import normalize_hhmm
from .errors import NotFoundError, PersistenceError, ValidationError
from .storage import DEFAULT_DURATION_S, Alarm, clean_label, coerce_duration, decode_records

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("label", "time", "duration", "sound_clip")


class AlarmPersistence(Protocol):
    def load(self) -> List[dict]: ...

    def save(self, records: List[dict]) -> None: ...


class AlarmStore:
    """Ordered alarm collection; every mutation is followed by a snapshot save."""

    def __init__(self, persistence: AlarmPersistence, default_duration: int = DEFAULT_DURATION_S):
        self.persistence = persistence
        self.default_duration = coerce_duration(default_duration)
        self.last_save_error: Optional[PersistenceError] = None
        self._alarms: List[Alarm] = []
        self._lock = Lock()

    def load(self) -> List[Alarm]:
        alarms = decode_records(self.persistence.load())
        with self._lock:
            self._alarms = alarms
        logger.info("Loaded %s alarms", len(alarms))
        return list(alarms)

    def create(
        self,
        label: Optional[str],
        time: str,
        duration=None,
        sound_clip: Optional[bytes] = None,
    ) -> Alarm:
        if not time or not str(time).strip():
            raise ValidationError("Alarm time is required")
        normalized = normalize_hhmm(str(time))
        with self._lock:
            alarm = Alarm(
                id=self._new_id(),
                label=clean_label(label),
                time=normalized,
                duration=coerce_duration(duration, self.default_duration),
                sound_clip=sound_clip or None,
                created_at=datetime.now(),
            )
            self._alarms.append(alarm)
            self._save_locked()
        logger.info("Alarm %s created for %s (label=%s, duration=%ss)", alarm.id, alarm.time, alarm.label, alarm.duration)
        return alarm

    def update(self, alarm_id: str, **patch) -> Alarm:
        unknown = set(patch) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update alarm fields: {', '.join(sorted(unknown))}")
        changes = {}
        if "label" in patch:
            changes["label"] = clean_label(patch["label"])
        if "time" in patch:
            if not patch["time"]:
                raise ValidationError("Alarm time is required")
            changes["time"] = normalize_hhmm(str(patch["time"]))
        if "duration" in patch:
            changes["duration"] = coerce_duration(patch["duration"], self.default_duration)
        if "sound_clip" in patch:
            changes["sound_clip"] = patch["sound_clip"] or None
        with self._lock:
            alarm = self._find_locked(alarm_id)
            if alarm is None:
                raise NotFoundError(alarm_id)
            for name, value in changes.items():
                setattr(alarm, name, value)
            self._save_locked()
        logger.info("Alarm %s updated (%s)", alarm_id, ", ".join(sorted(changes)) or "no changes")
        return alarm

    def delete(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            alarm = self._find_locked(alarm_id)
            if alarm is None:
                logger.debug("Delete ignored, alarm %s not present", alarm_id)
                return None
            self._alarms = [a for a in self._alarms if a.id != alarm_id]
            self._save_locked()
        logger.info("Alarm %s deleted", alarm_id)
        return alarm

    def list(self) -> List[Alarm]:
        with self._lock:
            return list(self._alarms)

    def get(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            return self._find_locked(alarm_id)

    def __contains__(self, alarm_id: str) -> bool:
        return self.get(alarm_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._alarms)

    def _find_locked(self, alarm_id: str) -> Optional[Alarm]:
        for alarm in self._alarms:
            if alarm.id == alarm_id:
                return alarm
        return None

    def _new_id(self) -> str:
        while True:
            alarm_id = f"al_{uuid.uuid4().hex[:8]}"
            if self._find_locked(alarm_id) is None:
                return alarm_id

    def _save_locked(self) -> None:
        records = [a.to_record() for a in self._alarms]
        try:
            self.persistence.save(records)
        except PersistenceError as exc:
            # In-memory state stays authoritative for the running session.
            self.last_save_error = exc
            logger.error("Alarm snapshot not saved: %s", exc)
        else:
            self.last_save_error = None
