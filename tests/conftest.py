from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from alarms.errors import PersistenceError
from alarms.manager import AlarmManager
from alarms.scheduler import TaskScheduler
from alarms.session import RingingController
from alarms.store import AlarmStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int, second: int = 0) -> datetime:
        self.now = self.now.replace(hour=hour, minute=minute, second=second, microsecond=0)
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class MemoryPersistence:
    def __init__(self, records: Optional[List[dict]] = None):
        self.records = records or []
        self.saves = 0
        self.fail = False

    def load(self) -> List[dict]:
        if self.fail:
            raise PersistenceError("storage offline")
        return json.loads(json.dumps(self.records))

    def save(self, records: List[dict]) -> None:
        self.saves += 1
        if self.fail:
            raise PersistenceError("disk full")
        self.records = json.loads(json.dumps(records))


class FakeSound:
    kind = "fake"

    def __init__(self, alarm):
        self.alarm = alarm
        self.starts = 0
        self.stops = 0

    @property
    def active(self) -> bool:
        return self.starts > 0 and self.stops == 0

    def start(self) -> None:
        self.starts += 1

    def stop(self) -> None:
        self.stops += 1


class FakeResolver:
    def __init__(self):
        self.handles: List[FakeSound] = []
        self.previews: List[bytes] = []

    def resolve(self, alarm) -> FakeSound:
        handle = FakeSound(alarm)
        self.handles.append(handle)
        return handle

    def preview(self, clip: bytes) -> FakeSound:
        self.previews.append(clip)
        handle = FakeSound(None)
        handle.start()
        return handle


class FakeDisplay:
    def __init__(self):
        self.shown: List[tuple] = []
        self.cleared = 0

    def show_ringing(self, label: str, time: str) -> None:
        self.shown.append((label, time))

    def clear_ringing(self) -> None:
        self.cleared += 1


class FakeSink:
    def __init__(self, target_plays: int = 1):
        self.plays: List[bytes] = []
        self.target_plays = target_plays
        self.reached = threading.Event()
        self.closed = threading.Event()

    def play_bytes(self, audio_bytes: bytes) -> None:
        self.plays.append(audio_bytes)
        if len(self.plays) >= self.target_plays:
            self.reached.set()

    def close(self) -> None:
        self.closed.set()


class FakeCapture:
    def __init__(self, clip: bytes = b"RIFF-voice-clip"):
        self.clip = clip
        self.deny = False
        self.started = 0
        self.stopped = 0

    def start_capture(self) -> str:
        if self.deny:
            raise PermissionError("microphone blocked")
        self.started += 1
        return f"capture-{self.started}"

    def stop_capture(self, handle: str) -> bytes:
        self.stopped += 1
        return self.clip


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 1, 6, 59, 0))


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def store(persistence) -> AlarmStore:
    return AlarmStore(persistence)


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def display() -> FakeDisplay:
    return FakeDisplay()


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def scheduler() -> TaskScheduler:
    return TaskScheduler()


@pytest.fixture
def controller(store, resolver, scheduler, clock, display) -> RingingController:
    return RingingController(store, resolver, scheduler, clock=clock, display=display)


@pytest.fixture
def manager(store, resolver, capture, display, clock) -> AlarmManager:
    return AlarmManager(store, resolver, capture_service=capture, display=display, clock=clock)
