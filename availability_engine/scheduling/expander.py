"""Expands weekly rules into concrete instant intervals.

Wall-clock times are converted with the offset of the date they fall on, so a
09:00 start stays 09:00 local on both sides of a DST change.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

import pytz

from availability_engine.core.errors import InvalidRange, InvalidTemplate
from availability_engine.scheduling.intervals import Interval, normalize
from availability_engine.scheduling.schemas import BlackoutPeriod, OverrideBlock, WeeklyTemplate

logger = logging.getLogger(__name__)

MIDNIGHT = time(0, 0)


def get_timezone(name: str) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise InvalidTemplate(f"Unknown timezone '{name}'.", timezone=name) from exc


def check_range(range_start: datetime, range_end: datetime, max_span: timedelta | None = None) -> None:
    if range_start.tzinfo is None or range_end.tzinfo is None:
        raise InvalidRange('Range bounds must carry a UTC offset.')
    if range_end <= range_start:
        raise InvalidRange(
            'Range end must be after range start.',
            range_start=range_start,
            range_end=range_end,
        )
    if max_span is not None and range_end - range_start > max_span:
        raise InvalidRange(
            f'Range may span at most {max_span.days} days.',
            range_start=range_start,
            range_end=range_end,
        )


def check_template(template: WeeklyTemplate) -> None:
    weekdays = [day.weekday for day in template.days]
    if sorted(weekdays) != list(range(7)):
        raise InvalidTemplate(
            'Weekly template needs exactly one entry per weekday.',
            provider_id=template.provider_id,
        )

    for day in template.days:
        if day.active and day.start >= day.end:
            raise InvalidTemplate(
                f'Active weekday {day.weekday} must start before it ends.',
                provider_id=template.provider_id,
                weekday=day.weekday,
            )

    get_timezone(template.timezone)


def to_instant(tz: pytz.BaseTzInfo, day: date, clock_time: time) -> datetime:
    # normalize() moves wall-clock times that fall in a DST gap forward.
    local = tz.normalize(tz.localize(datetime.combine(day, clock_time)))
    return local.astimezone(pytz.utc)


def day_interval(tz: pytz.BaseTzInfo, day: date) -> Interval:
    return Interval(to_instant(tz, day, MIDNIGHT), to_instant(tz, day + timedelta(days=1), MIDNIGHT))


def local_dates(tz: pytz.BaseTzInfo, range_start: datetime, range_end: datetime) -> Iterator[date]:
    current = range_start.astimezone(tz).date()
    last = range_end.astimezone(tz).date()
    while current <= last:
        yield current
        current += timedelta(days=1)


def local_day_span(tz: pytz.BaseTzInfo, start: datetime, end: datetime) -> Interval:
    """Widen ``[start, end)`` to whole local days."""
    first_day = start.astimezone(tz).date()
    last_instant = end - timedelta(microseconds=1)
    last_day = max(last_instant.astimezone(tz).date(), first_day)
    return Interval(day_interval(tz, first_day).start, day_interval(tz, last_day).end)


def _window(tz: pytz.BaseTzInfo, day: date, start: time | None, end: time | None) -> Interval:
    if start is None:
        return day_interval(tz, day)
    return Interval(to_instant(tz, day, start), to_instant(tz, day, end))


def expand_template(template: WeeklyTemplate, range_start: datetime, range_end: datetime) -> list[Interval]:
    check_range(range_start, range_end)
    check_template(template)
    tz = get_timezone(template.timezone)

    intervals = []
    for day in local_dates(tz, range_start, range_end):
        hours = template.for_weekday(day.weekday())
        if hours is not None and hours.active:
            intervals.append(_window(tz, day, hours.start, hours.end))

    return normalize(intervals)


def expand_overrides(
    blocks: Iterable[OverrideBlock],
    tz: pytz.BaseTzInfo,
    range_start: datetime,
    range_end: datetime,
) -> list[Interval]:
    blocks = list(blocks)
    intervals = []
    for day in local_dates(tz, range_start, range_end):
        for block in blocks:
            if block.occurs_on(day):
                intervals.append(_window(tz, day, block.start, block.end))

    return normalize(intervals)


def expand_blackouts(
    periods: Iterable[BlackoutPeriod],
    tz: pytz.BaseTzInfo,
    range_start: datetime,
    range_end: datetime,
) -> list[Interval]:
    periods = list(periods)
    intervals = [
        Interval(period.start_instant, period.end_instant)
        for period in periods
        if period.is_instant_span
    ]

    dated = [period for period in periods if not period.is_instant_span]
    for day in local_dates(tz, range_start, range_end):
        for period in dated:
            if period.occurs_on(day):
                intervals.append(_window(tz, day, period.start_time, period.end_time))

    logger.debug('Expanded %d blackout periods into %d intervals', len(periods), len(intervals))
    return normalize(intervals)
