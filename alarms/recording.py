from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, Union

from .errors import CapturePermissionError, NotFoundError
from .storage import Alarm
from .store import AlarmStore

logger = logging.getLogger(__name__)


class CaptureService(Protocol):
    def start_capture(self) -> Any: ...

    def stop_capture(self, handle: Any) -> bytes: ...


@dataclass
class PendingRecording:
    clip: bytes = field(repr=False)
    captured_at: datetime = field(default_factory=datetime.now)


@dataclass
class _ActiveCapture:
    handle: Any
    target_alarm_id: Optional[str] = None


class CaptureCoordinator:
    """Routes microphone clips either to a draft recording or to an existing alarm."""

    def __init__(self, service: CaptureService, store: AlarmStore):
        self.service = service
        self.store = store
        self.pending: Optional[PendingRecording] = None
        self._active: Optional[_ActiveCapture] = None

    @property
    def is_recording(self) -> bool:
        return self._active is not None

    @property
    def target_alarm_id(self) -> Optional[str]:
        return self._active.target_alarm_id if self._active else None

    def start(self, alarm_id: Optional[str] = None) -> None:
        if self._active is not None:
            logger.warning("Recording already in progress, ignoring start")
            return
        if alarm_id is not None and alarm_id not in self.store:
            raise NotFoundError(alarm_id)
        try:
            handle = self.service.start_capture()
        except PermissionError as exc:
            logger.error("Microphone access denied: %s", exc)
            raise CapturePermissionError(f"Could not access microphone: {exc}") from exc
        self._active = _ActiveCapture(handle=handle, target_alarm_id=alarm_id)
        logger.info("Recording started%s", f" for alarm {alarm_id}" if alarm_id else "")

    def stop(self) -> Union[Alarm, PendingRecording, None]:
        active = self._active
        if active is None:
            return None
        self._active = None
        clip = self.service.stop_capture(active.handle)
        logger.info("Recording stopped (%s bytes)", len(clip or b""))
        if not clip:
            return None
        if active.target_alarm_id is not None:
            try:
                return self.store.update(active.target_alarm_id, sound_clip=clip)
            except NotFoundError:
                logger.warning("Alarm %s disappeared during recording, keeping clip as draft", active.target_alarm_id)
        self.pending = PendingRecording(clip=clip)
        return self.pending

    def cancel(self) -> None:
        active = self._active
        if active is None:
            return
        self._active = None
        try:
            self.service.stop_capture(active.handle)
        except OSError as exc:
            logger.warning("Error while cancelling recording: %s", exc)
        logger.info("Recording cancelled")

    def take_pending(self) -> Optional[bytes]:
        pending, self.pending = self.pending, None
        return pending.clip if pending else None

    def discard_pending(self) -> None:
        if self.pending is not None:
            logger.info("Draft recording discarded")
        self.pending = None
