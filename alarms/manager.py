from __future__ import annotations

import logging
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, List, Optional, Union

from .clock import ClockTicker, minute_key
from .errors import AlarmError, NotFoundError, PersistenceError
from .matcher import find_due_alarms
from .recording import CaptureCoordinator, CaptureService, PendingRecording
from .scheduler import TaskScheduler
from .session import DEFAULT_SNOOZE_MINUTES, AlarmDisplay, RingingController
from .sounds import SoundHandle, SoundResolver
from .storage import Alarm
from .store import AlarmStore

logger = logging.getLogger(__name__)


class AlarmManager:
    """Entry point tying the tick, the alarm store and the ringing state together.

    Ticks and user commands may come from different threads; all of them are
    serialised through one re-entrant lock.
    """

    def __init__(
        self,
        store: AlarmStore,
        sound_resolver: SoundResolver,
        capture_service: Optional[CaptureService] = None,
        display: Optional[AlarmDisplay] = None,
        clock: Callable[[], datetime] = datetime.now,
        tick_interval: float = 1.0,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
    ):
        self.store = store
        self.sound_resolver = sound_resolver
        self.clock = clock
        self.scheduler = TaskScheduler()
        self.controller = RingingController(
            store,
            sound_resolver,
            self.scheduler,
            clock=clock,
            display=display,
            snooze_minutes=snooze_minutes,
        )
        self.recorder = CaptureCoordinator(capture_service, store) if capture_service else None
        self.ticker = ClockTicker(self.tick, interval=tick_interval, clock=clock)

        self._lock = RLock()
        # alarm id -> calendar minute it last rang in; memory only
        self._fired_minutes: Dict[str, str] = {}
        self._preview: Optional[SoundHandle] = None

    def start(self) -> None:
        with self._lock:
            try:
                self.store.load()
            except PersistenceError as exc:
                logger.error("Starting with an empty alarm list: %s", exc)
        self.ticker.start()
        logger.info("Alarm clock started (%s alarms)", len(self.store))

    def shutdown(self) -> None:
        self.ticker.shutdown()
        with self._lock:
            self.controller.shutdown()
            self.stop_preview()
            if self.recorder:
                self.recorder.cancel()
        logger.info("Alarm clock stopped")

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Run due auto-stops, then ring or queue every alarm matching ``now``."""
        now = now or self.clock()
        with self._lock:
            self.scheduler.run_due(now)
            key = minute_key(now)
            matched: List[str] = []
            for alarm_id in find_due_alarms(now, self.store.list()):
                if self._fired_minutes.get(alarm_id) == key:
                    continue
                alarm = self.store.get(alarm_id)
                if alarm is None:
                    continue
                self._fired_minutes[alarm_id] = key
                self.controller.offer(alarm, now)
                matched.append(alarm_id)
            return matched

    def create_alarm(
        self,
        time: str,
        label: Optional[str] = None,
        duration=None,
        sound_clip: Optional[bytes] = None,
    ) -> Alarm:
        with self._lock:
            use_draft = sound_clip is None and self.recorder is not None and self.recorder.pending is not None
            if use_draft:
                sound_clip = self.recorder.pending.clip
            alarm = self.store.create(label, time, duration, sound_clip)
            if use_draft:
                self.recorder.take_pending()
            return alarm

    def update_label(self, alarm_id: str, label: Optional[str]) -> Alarm:
        with self._lock:
            return self.store.update(alarm_id, label=label)

    def update_alarm(self, alarm_id: str, **patch) -> Alarm:
        with self._lock:
            return self.store.update(alarm_id, **patch)

    def delete_alarm(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            self._fired_minutes.pop(alarm_id, None)
            return self.store.delete(alarm_id)

    def list_alarms(self) -> List[Alarm]:
        return self.store.list()

    def get_alarm(self, alarm_id: str) -> Optional[Alarm]:
        return self.store.get(alarm_id)

    def dismiss(self) -> Optional[Alarm]:
        with self._lock:
            return self.controller.dismiss()

    def snooze(self) -> Optional[Alarm]:
        with self._lock:
            return self.controller.snooze()

    @property
    def is_ringing(self) -> bool:
        with self._lock:
            return self.controller.is_ringing

    @property
    def ringing_alarm(self) -> Optional[Alarm]:
        with self._lock:
            return self.controller.ringing_alarm

    def start_recording(self, alarm_id: Optional[str] = None) -> None:
        with self._lock:
            self._require_recorder().start(alarm_id)

    def stop_recording(self) -> Union[Alarm, PendingRecording, None]:
        with self._lock:
            return self._require_recorder().stop()

    def cancel_recording(self) -> None:
        with self._lock:
            self._require_recorder().cancel()

    def discard_pending(self) -> None:
        with self._lock:
            if self.recorder:
                self.recorder.discard_pending()

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return bool(self.recorder and self.recorder.is_recording)

    @property
    def pending_recording(self) -> Optional[PendingRecording]:
        with self._lock:
            return self.recorder.pending if self.recorder else None

    def preview_sound(self, alarm_id: str) -> bool:
        with self._lock:
            alarm = self.store.get(alarm_id)
            if alarm is None:
                raise NotFoundError(alarm_id)
            if not alarm.sound_clip:
                return False
            self.stop_preview()
            self._preview = self.sound_resolver.preview(alarm.sound_clip)
            return self._preview is not None

    def stop_preview(self) -> None:
        with self._lock:
            if self._preview is not None:
                self._preview.stop()
                self._preview = None

    def _require_recorder(self) -> CaptureCoordinator:
        if self.recorder is None:
            raise AlarmError("No audio capture service configured")
        return self.recorder
