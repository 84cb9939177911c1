"""Contracts for the stores the engine reads from and books through.

Implementations raise ``UpstreamUnavailable`` when the backing system fails.
The engine never retries a store call.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Iterable, Protocol

from availability_engine.scheduling.schemas import (
    Appointment,
    AppointmentStatus,
    BlackoutPeriod,
    BookingPolicy,
    OverrideBlock,
    WeeklyTemplate,
)


class ScheduleReader(Protocol):
    def get_weekly_template(self, provider_id: str) -> WeeklyTemplate:
        ...

    def get_booking_policy(self, provider_id: str) -> BookingPolicy:
        ...

    def get_override_blocks(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[OverrideBlock]:
        ...

    def get_blackout_periods(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[BlackoutPeriod]:
        ...

    def get_appointments(
        self,
        provider_id: str,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        ...

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        ...


class ScheduleTransaction(ScheduleReader, Protocol):
    """Reads and writes that commit or roll back together."""

    def insert_appointment(
        self,
        provider_id: str,
        patient_id: str,
        start: datetime,
        end: datetime,
        notes: str | None = None,
    ) -> Appointment:
        ...

    def update_appointment_status(self, appointment_id: int, status: AppointmentStatus) -> Appointment:
        ...


class ScheduleStore(ScheduleReader, Protocol):
    def transaction(self, provider_id: str) -> AbstractContextManager[ScheduleTransaction]:
        ...
