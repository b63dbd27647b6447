from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from itertools import count
from threading import Lock
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    due_at: datetime
    callback: Callable[[], None]
    name: str = ""
    cancelled: bool = False
    done: bool = False
    seq: int = 0

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> bool:
        if self.done:
            return False
        self.cancelled = True
        return True


class TaskScheduler:
    """Deadline callbacks driven by the clock tick instead of wall-clock timers."""

    def __init__(self) -> None:
        self._tasks: List[ScheduledTask] = []
        self._lock = Lock()
        self._sequence = count()

    def call_at(self, due_at: datetime, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        with self._lock:
            task = ScheduledTask(due_at=due_at, callback=callback, name=name, seq=next(self._sequence))
            self._tasks.append(task)
        return task

    def run_due(self, now: datetime) -> int:
        with self._lock:
            self._tasks = [t for t in self._tasks if t.pending]
            due = sorted((t for t in self._tasks if t.due_at <= now), key=lambda t: (t.due_at, t.seq))
        ran = 0
        for task in due:
            # A callback earlier in this batch may have cancelled a later one.
            if not task.pending:
                continue
            task.done = True
            ran += 1
            try:
                task.callback()
            except Exception:
                logger.error("Scheduled task %s failed", task.name or task.seq, exc_info=True)
        with self._lock:
            self._tasks = [t for t in self._tasks if t.pending]
        return ran

    def cancel_all(self) -> None:
        with self._lock:
            for task in self._tasks:
                task.cancel()
            self._tasks = []

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for t in self._tasks if t.pending)
