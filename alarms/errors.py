from __future__ import annotations


class AlarmError(Exception):
    """Base class for alarm engine errors."""


class ValidationError(AlarmError, ValueError):
    pass


class NotFoundError(AlarmError, LookupError):
    def __init__(self, alarm_id: str):
        super().__init__(f"Alarm {alarm_id} not found")
        self.alarm_id = alarm_id


class CapturePermissionError(AlarmError, PermissionError):
    pass


class PersistenceError(AlarmError):
    pass
