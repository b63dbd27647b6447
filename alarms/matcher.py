from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from .clock import current_hhmm
from .storage import Alarm


def find_due_alarms(now: datetime, alarms: Iterable[Alarm]) -> List[str]:
    """Return ids of untriggered alarms set for the current minute.

    Matching is on ``HH:MM`` only, so an alarm stays eligible for every tick of
    its minute until ``triggered`` is set.
    """
    current = current_hhmm(now)
    return [alarm.id for alarm in alarms if alarm.time == current and not alarm.triggered]
