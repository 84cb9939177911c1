"""Immutable value objects passed through the slot resolution pipeline."""

from datetime import date, datetime, time, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from availability_engine.core import config
from availability_engine.scheduling.intervals import Interval

WEEKDAY_NAMES = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
WORKING_WEEKDAYS = (0, 1, 2, 3, 4)

# OverrideBlock has a field named `date`, which hides the type inside its body.
_Date = date


class _ValueObject(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class DayHours(_ValueObject):
    weekday: int = Field(ge=0, le=6)
    active: bool = False
    start: time = time(0, 0)
    end: time = time(0, 0)


class WeeklyTemplate(_ValueObject):
    """A provider's working hours, one entry per weekday.

    Saved as a whole week; there is no partial update.
    """

    provider_id: str
    timezone: str = config.DEFAULT_TIMEZONE
    days: tuple[DayHours, ...]

    @classmethod
    def default(cls, provider_id: str, timezone: str = config.DEFAULT_TIMEZONE) -> 'WeeklyTemplate':
        days = [DayHours(weekday=weekday, active=True, start=time(9, 0), end=time(17, 0)) for weekday in WORKING_WEEKDAYS]
        days.append(DayHours(weekday=5, active=False, start=time(10, 0), end=time(14, 0)))
        days.append(DayHours(weekday=6, active=False))
        return cls(provider_id=provider_id, timezone=timezone, days=tuple(days))

    def for_weekday(self, weekday: int) -> DayHours | None:
        for day in self.days:
            if day.weekday == weekday:
                return day
        return None

    def copy_to_weekdays(self, weekday: int) -> 'WeeklyTemplate':
        source = self.for_weekday(weekday)
        if source is None:
            raise ValueError(f'No hours configured for weekday {weekday}.')

        days = tuple(
            day.model_copy(update={'active': source.active, 'start': source.start, 'end': source.end})
            if day.weekday in WORKING_WEEKDAYS and day.weekday != weekday
            else day
            for day in self.days
        )
        return self.model_copy(update={'days': days})


class OverrideBlock(_ValueObject):
    """Extra availability on top of the template, weekly or on one date."""

    id: int | None = None
    weekday: int | None = Field(default=None, ge=0, le=6)
    date: _Date | None = None
    start: time
    end: time

    @model_validator(mode='after')
    def check_shape(self) -> 'OverrideBlock':
        if (self.weekday is None) == (self.date is None):
            raise ValueError('Exactly one of weekday or date must be set.')
        if self.start >= self.end:
            raise ValueError('Override block must start before it ends.')
        return self

    @property
    def is_recurring(self) -> bool:
        return self.weekday is not None

    def occurs_on(self, day: _Date) -> bool:
        if self.is_recurring:
            return day.weekday() == self.weekday
        return day == self.date


class BlackoutPeriod(_ValueObject):
    """Time off. Takes precedence over the template and every override.

    Expressed as an inclusive date span, a weekly recurring day or an exact
    instant span. The date forms may narrow each day to a time window.
    """

    id: int | None = None
    reason: str
    start_date: date | None = None
    end_date: date | None = None
    weekday: int | None = Field(default=None, ge=0, le=6)
    start_time: time | None = None
    end_time: time | None = None
    start_instant: datetime | None = None
    end_instant: datetime | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A blackout period needs a reason.')
        return normalized

    @model_validator(mode='after')
    def check_shape(self) -> 'BlackoutPeriod':
        has_dates = self.start_date is not None or self.end_date is not None
        has_instants = self.start_instant is not None or self.end_instant is not None
        has_weekday = self.weekday is not None

        if sum((has_dates, has_instants, has_weekday)) != 1:
            raise ValueError('Use exactly one of a date span, a weekday or an instant span.')

        if has_dates:
            if self.start_date is None or self.end_date is None:
                raise ValueError('Both start_date and end_date are required.')
            if self.start_date > self.end_date:
                raise ValueError('start_date must not be after end_date.')

        if has_instants:
            if self.start_instant is None or self.end_instant is None:
                raise ValueError('Both start_instant and end_instant are required.')
            if self.start_instant.tzinfo is None or self.end_instant.tzinfo is None:
                raise ValueError('Blackout instants must carry a UTC offset.')
            if self.start_instant >= self.end_instant:
                raise ValueError('start_instant must be before end_instant.')
            if self.start_time is not None or self.end_time is not None:
                raise ValueError('Instant spans do not take a daily time window.')

        if (self.start_time is None) != (self.end_time is None):
            raise ValueError('start_time and end_time must be set together.')
        if self.start_time is not None and self.start_time >= self.end_time:
            raise ValueError('start_time must be before end_time.')

        return self

    @property
    def is_recurring(self) -> bool:
        return self.weekday is not None

    @property
    def is_instant_span(self) -> bool:
        return self.start_instant is not None

    def occurs_on(self, day: date) -> bool:
        if self.is_recurring:
            return day.weekday() == self.weekday
        if self.is_instant_span:
            return False
        return self.start_date <= day <= self.end_date


class AppointmentStatus(str, Enum):
    SCHEDULED = 'SCHEDULED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'


BLOCKING_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED)


class Appointment(_ValueObject):
    id: int | None = None
    provider_id: str
    patient_id: str
    start: datetime
    end: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None

    @property
    def occupies_time(self) -> bool:
        return self.status in BLOCKING_STATUSES

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)


class BookingPolicy(_ValueObject):
    slot_duration_minutes: int = config.DEFAULT_SLOT_DURATION_MINUTES
    buffer_minutes: int = config.DEFAULT_BUFFER_MINUTES
    min_lead_minutes: int = config.DEFAULT_MIN_LEAD_MINUTES

    @field_validator('slot_duration_minutes')
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        if not config.MIN_SLOT_DURATION_MINUTES <= value <= config.MAX_SLOT_DURATION_MINUTES:
            raise ValueError(
                f'Slot duration must be between {config.MIN_SLOT_DURATION_MINUTES} '
                f'and {config.MAX_SLOT_DURATION_MINUTES} minutes.'
            )
        return value

    @field_validator('buffer_minutes')
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        if not 0 <= value <= config.MAX_BUFFER_MINUTES:
            raise ValueError(f'Buffer must be between 0 and {config.MAX_BUFFER_MINUTES} minutes.')
        return value

    @field_validator('min_lead_minutes')
    @classmethod
    def validate_min_lead(cls, value: int) -> int:
        if value < 0:
            raise ValueError('Lead time cannot be negative.')
        return value


class SlotQuery(_ValueObject):
    provider_id: str
    range_start: datetime
    range_end: datetime
    slot_duration_minutes: int | None = None
    buffer_minutes: int | None = None
    min_lead_minutes: int | None = None

    @field_validator('slot_duration_minutes')
    @classmethod
    def validate_slot_duration(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError('Slot duration must be positive.')
        return value

    @field_validator('buffer_minutes', 'min_lead_minutes')
    @classmethod
    def validate_non_negative(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError('Minutes cannot be negative.')
        return value

    def resolve(self, policy: BookingPolicy) -> 'SlotQuery':
        """Fill any omitted minute settings from the provider's policy."""
        return self.model_copy(update={
            'slot_duration_minutes': self.slot_duration_minutes or policy.slot_duration_minutes,
            'buffer_minutes': policy.buffer_minutes if self.buffer_minutes is None else self.buffer_minutes,
            'min_lead_minutes': policy.min_lead_minutes if self.min_lead_minutes is None else self.min_lead_minutes,
        })


class Slot(_ValueObject):
    start: datetime
    end: datetime

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start
