"""Resolves template, overrides and blackouts into raw available time.

Priority, highest first: blackout periods, override blocks, weekly template.
Conflicts are settled by subtraction; no block is ever edited or dropped.
"""

from datetime import datetime
from typing import Iterable

from availability_engine.scheduling.expander import (
    expand_blackouts,
    expand_overrides,
    expand_template,
    get_timezone,
)
from availability_engine.scheduling.intervals import Interval, subtract, union
from availability_engine.scheduling.schemas import BlackoutPeriod, OverrideBlock, WeeklyTemplate


def reconcile(
    template: WeeklyTemplate,
    overrides: Iterable[OverrideBlock],
    blackouts: Iterable[BlackoutPeriod],
    range_start: datetime,
    range_end: datetime,
) -> list[Interval]:
    template_intervals = expand_template(template, range_start, range_end)
    tz = get_timezone(template.timezone)
    override_intervals = expand_overrides(overrides, tz, range_start, range_end)
    blackout_intervals = expand_blackouts(blackouts, tz, range_start, range_end)

    return subtract(union(template_intervals, override_intervals), blackout_intervals)
