"""Helpers deriving state from a sensor's cached reading history."""
from __future__ import annotations
from bisect import bisect_right
from typing import List, Optional, Sequence

from .models import LightStatus, Reading


def last_reading(readings: Optional[Sequence[Reading]]) -> Optional[Reading]:
    """Chronologically last reading of a history kept in ascending timestamp order."""
    if not readings:
        return None
    return readings[-1]


def light_status(readings: Optional[Sequence[Reading]]) -> LightStatus:
    last = last_reading(readings)
    if last is None:
        return LightStatus.UNKNOWN
    return LightStatus.ON if last.light_on else LightStatus.OFF


def merge_reading(readings: Sequence[Reading], reading: Reading) -> List[Reading]:
    """
    Return a new history with reading merged in by timestamp.

    A reading with the same timestamp is replaced (the latest one when there
    are duplicates), otherwise the reading is inserted at its sorted position,
    which is an append for the newest sample.
    """
    merged = list(readings)
    timestamps = [r.timestamp for r in merged]
    pos = bisect_right(timestamps, reading.timestamp)
    if pos > 0 and timestamps[pos - 1] == reading.timestamp:
        merged[pos - 1] = reading
    else:
        merged.insert(pos, reading)
    return merged
