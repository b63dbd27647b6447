from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Deque, List, Optional, Protocol

from .clock import add_minutes
from .errors import NotFoundError
from .scheduler import ScheduledTask, TaskScheduler
from .sounds import SoundHandle, SoundResolver
from .storage import Alarm
from .store import AlarmStore

logger = logging.getLogger(__name__)

DEFAULT_SNOOZE_MINUTES = 5


class AlarmDisplay(Protocol):
    def show_ringing(self, label: str, time: str) -> None: ...

    def clear_ringing(self) -> None: ...


@dataclass
class RingingSession:
    alarm: Alarm
    sound: SoundHandle
    started_at: datetime
    deadline: datetime
    auto_stop: Optional[ScheduledTask] = None


class RingingController:
    """Idle/Ringing state machine for one alarm at a time.

    Matches that arrive while an alarm is ringing wait in a FIFO queue and ring
    after the active session resolves. The controller holds its own reference to
    the ringing alarm, so deleting it from the store does not break dismiss,
    snooze or auto-stop. Callers serialise access (see ``AlarmManager``).
    """

    def __init__(
        self,
        store: AlarmStore,
        resolver: SoundResolver,
        scheduler: TaskScheduler,
        clock: Callable[[], datetime] = datetime.now,
        display: Optional[AlarmDisplay] = None,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
    ):
        self.store = store
        self.resolver = resolver
        self.scheduler = scheduler
        self.clock = clock
        self.display = display
        self.snooze_minutes = max(1, snooze_minutes)
        self.session: Optional[RingingSession] = None
        self._queue: Deque[Alarm] = deque()

    @property
    def is_ringing(self) -> bool:
        return self.session is not None

    @property
    def ringing_alarm(self) -> Optional[Alarm]:
        return self.session.alarm if self.session else None

    @property
    def queued_ids(self) -> List[str]:
        return [alarm.id for alarm in self._queue]

    def offer(self, alarm: Alarm, now: Optional[datetime] = None) -> bool:
        """Ring ``alarm`` now if idle, otherwise queue it. Returns True if it rang."""
        if self.session is None:
            self._ring(alarm, now or self.clock())
            return True
        if alarm.id == self.session.alarm.id or alarm.id in self.queued_ids:
            return False
        self._queue.append(alarm)
        logger.info("Alarm %s queued behind ringing alarm %s", alarm.id, self.session.alarm.id)
        return False

    def dismiss(self) -> Optional[Alarm]:
        session = self.session
        if session is None:
            return None
        self._finish(session, "dismissed")
        self._ring_next()
        return session.alarm

    def snooze(self) -> Optional[Alarm]:
        session = self.session
        if session is None:
            return None
        alarm = session.alarm
        self._finish(session, "snoozed")
        new_time = add_minutes(alarm.time, self.snooze_minutes)
        try:
            self.store.update(alarm.id, time=new_time)
            logger.info("Alarm %s snoozed until %s", alarm.id, new_time)
        except NotFoundError:
            logger.info("Alarm %s was deleted while ringing, snooze not rescheduled", alarm.id)
        self._ring_next()
        return alarm

    def shutdown(self) -> None:
        self._queue.clear()
        if self.session is not None:
            self._finish(self.session, "stopped on shutdown")

    def _ring(self, alarm: Alarm, now: datetime) -> None:
        alarm.triggered = True
        sound = self.resolver.resolve(alarm)
        session = RingingSession(
            alarm=alarm,
            sound=sound,
            started_at=now,
            deadline=now + timedelta(seconds=alarm.duration),
        )
        self.session = session
        session.auto_stop = self.scheduler.call_at(
            session.deadline, lambda: self._auto_stop(session), name=f"auto-stop {alarm.id}"
        )
        sound.start()
        logger.info(
            "Alarm %s ringing at %s (label=%s, sound=%s, until=%s)",
            alarm.id,
            alarm.time,
            alarm.label,
            sound.kind,
            session.deadline.strftime("%H:%M:%S"),
        )
        if self.display:
            try:
                self.display.show_ringing(alarm.label, alarm.time)
            except Exception:
                logger.error("Display failed to show ringing alarm", exc_info=True)

    def _auto_stop(self, session: RingingSession) -> None:
        if self.session is not session:
            return
        self._finish(session, "auto-stopped")
        self._ring_next()

    def _finish(self, session: RingingSession, reason: str) -> None:
        if session.auto_stop is not None:
            session.auto_stop.cancel()
        self.session = None
        session.sound.stop()
        session.alarm.triggered = False
        logger.info("Alarm %s %s", session.alarm.id, reason)
        if self.display:
            try:
                self.display.clear_ringing()
            except Exception:
                logger.error("Display failed to clear ringing alarm", exc_info=True)

    def _ring_next(self) -> None:
        while self._queue and self.session is None:
            alarm = self._queue.popleft()
            if alarm.id not in self.store:
                logger.info("Queued alarm %s was deleted, skipping", alarm.id)
                continue
            self._ring(alarm, self.clock())
