from datetime import datetime, timedelta
from typing import Iterable

from availability_engine.core import config
from availability_engine.scheduling.conflicts import filter_bookable
from availability_engine.scheduling.expander import check_range, get_timezone, local_day_span
from availability_engine.scheduling.intervals import Interval
from availability_engine.scheduling.quantizer import quantize
from availability_engine.scheduling.reconciler import reconcile
from availability_engine.scheduling.schemas import (
    Appointment,
    BlackoutPeriod,
    OverrideBlock,
    Slot,
    SlotQuery,
    WeeklyTemplate,
)


def max_query_span() -> timedelta:
    return timedelta(days=config.MAX_QUERY_SPAN_DAYS)


def expansion_window(template: WeeklyTemplate, range_start: datetime, range_end: datetime) -> Interval:
    """Whole local days covering the range.

    The slot grid is anchored at the start of each available interval, so the
    interval has to be resolved for the whole day even when the query asks for
    part of it.
    """
    return local_day_span(get_timezone(template.timezone), range_start, range_end)


def resolve_open_slots(
    query: SlotQuery,
    template: WeeklyTemplate,
    overrides: Iterable[OverrideBlock],
    blackouts: Iterable[BlackoutPeriod],
    appointments: Iterable[Appointment],
    now: datetime,
) -> list[Slot]:
    """Run expansion, reconciliation, quantization and conflict filtering.

    ``query`` must already carry concrete minute settings (see
    ``SlotQuery.resolve``). Only slots lying fully inside the query range are
    returned.
    """
    check_range(query.range_start, query.range_end, max_query_span())
    window = expansion_window(template, query.range_start, query.range_end)

    available = reconcile(template, overrides, blackouts, window.start, window.end)
    slots = quantize(available, query.slot_duration_minutes, query.buffer_minutes)
    slots = [slot for slot in slots if query.range_start <= slot.start and slot.end <= query.range_end]

    return filter_bookable(slots, appointments, query.min_lead_minutes, now)
