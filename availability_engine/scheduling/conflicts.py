from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Iterable

from availability_engine.scheduling.intervals import Interval, intersect, normalize
from availability_engine.scheduling.schemas import Appointment, Slot


def occupied_intervals(appointments: Iterable[Appointment]) -> list[Interval]:
    return normalize(appointment.interval for appointment in appointments if appointment.occupies_time)


def filter_bookable(
    slots: Iterable[Slot],
    appointments: Iterable[Appointment],
    min_lead_minutes: int,
    now: datetime,
) -> list[Slot]:
    """Drop slots that collide with booked time or start inside the lead window.

    Cancelled and no-show appointments are ignored, so their time reopens.
    """
    occupied = occupied_intervals(appointments)
    occupied_ends = [interval.end for interval in occupied]
    earliest_start = now + timedelta(minutes=min_lead_minutes)

    bookable = []
    for slot in slots:
        if slot.start < earliest_start:
            continue

        # The first occupied interval ending after the slot starts is the only candidate.
        nearby = occupied[bisect_right(occupied_ends, slot.start):][:1]
        if intersect([slot.interval], nearby):
            continue

        bookable.append(slot)

    return bookable
