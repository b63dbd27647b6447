"""Alarm scheduling and ringing engine."""

from .errors import AlarmError, CapturePermissionError, NotFoundError, PersistenceError, ValidationError
from .manager import AlarmManager
from .session import RingingController, RingingSession
from .storage import Alarm, JsonFileStorage
from .store import AlarmStore
