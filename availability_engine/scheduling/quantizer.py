from datetime import timedelta
from typing import Iterable

from availability_engine.scheduling.intervals import Interval, normalize
from availability_engine.scheduling.schemas import Slot


def quantize(available: Iterable[Interval], slot_duration_minutes: int, buffer_minutes: int = 0) -> list[Slot]:
    """Cut each available interval into whole slots.

    Slots restart at the beginning of every interval and never straddle a gap.
    A trailing remainder shorter than one slot is dropped.
    """
    if slot_duration_minutes <= 0:
        raise ValueError('Slot duration must be positive.')
    if buffer_minutes < 0:
        raise ValueError('Buffer cannot be negative.')

    duration = timedelta(minutes=slot_duration_minutes)
    step = duration + timedelta(minutes=buffer_minutes)

    slots: list[Slot] = []
    for interval in normalize(available):
        current_start = interval.start
        while current_start + duration <= interval.end:
            slots.append(Slot(start=current_start, end=current_start + duration))
            current_start += step

    return slots
