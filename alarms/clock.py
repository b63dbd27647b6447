from __future__ import annotations

import logging
import re
from datetime import datetime
from threading import Event, Thread
from typing import Callable, Optional, Tuple

from .errors import ValidationError

logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_hhmm(value: str) -> Tuple[int, int]:
    match = _HHMM_RE.match((value or "").strip())
    if not match:
        raise ValidationError(f"Alarm time must look like HH:MM, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f"Alarm time out of range: {value!r}")
    return hour, minute


def format_hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def normalize_hhmm(value: str) -> str:
    return format_hhmm(*parse_hhmm(value))


def add_minutes(value: str, minutes: int) -> str:
    """Shift an HH:MM string, wrapping around midnight."""
    hour, minute = parse_hhmm(value)
    total = (hour * 60 + minute + minutes) % (24 * 60)
    return format_hhmm(*divmod(total, 60))


def current_hhmm(now: datetime) -> str:
    return now.strftime("%H:%M")


def minute_key(now: datetime) -> str:
    return now.strftime("%Y-%m-%d %H:%M")


class ClockTicker:
    """Calls ``on_tick`` with the local time roughly once per interval."""

    def __init__(
        self,
        on_tick: Callable[[datetime], None],
        interval: float = 1.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.on_tick = on_tick
        self.interval = min(1.0, max(0.2, interval))
        self.clock = clock
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alarm-clock-tick", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def tick_once(self) -> datetime:
        now = self.clock()
        self.on_tick(now)
        return now

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick_once()
            except Exception:
                logger.error("Clock tick failed", exc_info=True)
            self._stop_event.wait(self.interval)
