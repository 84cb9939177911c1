import logging
from datetime import datetime, timedelta
from typing import Callable

import pytz

from availability_engine.core.errors import AppointmentNotFound, InvalidRange, InvalidStatusTransition
from availability_engine.scheduling.expander import check_range, check_template
from availability_engine.scheduling.guard import Reservation, ReservationGuard
from availability_engine.scheduling.pipeline import expansion_window, max_query_span, resolve_open_slots
from availability_engine.scheduling.schemas import (
    BLOCKING_STATUSES,
    Appointment,
    AppointmentStatus,
    Slot,
    SlotQuery,
)
from availability_engine.stores.base import ScheduleReader, ScheduleStore

logger = logging.getLogger(__name__)

# Appointments are never deleted; only a scheduled one may change status.
ALLOWED_STATUS_CHANGES = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
}


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


class AvailabilityService:
    def __init__(
        self,
        store: ScheduleStore,
        guard: ReservationGuard | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.guard = guard or ReservationGuard()
        self.clock = clock

    def get_available_slots(self, query: SlotQuery, now: datetime | None = None) -> list[Slot]:
        check_range(query.range_start, query.range_end, max_query_span())
        query = query.resolve(self.store.get_booking_policy(query.provider_id))
        return self._resolve(self.store, query, now or self.clock())

    def book_slot(
        self,
        provider_id: str,
        start: datetime,
        patient_id: str,
        *,
        slot_duration_minutes: int | None = None,
        buffer_minutes: int | None = None,
        min_lead_minutes: int | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Appointment:
        if start.tzinfo is None:
            raise InvalidRange('Slot start must carry a UTC offset.')
        if slot_duration_minutes is not None and slot_duration_minutes <= 0:
            raise InvalidRange('Slot duration must be positive.', slot_duration_minutes=slot_duration_minutes)
        for name, minutes in (('buffer_minutes', buffer_minutes), ('min_lead_minutes', min_lead_minutes)):
            if minutes is not None and minutes < 0:
                raise InvalidRange(f'{name} cannot be negative.', **{name: minutes})

        policy = self.store.get_booking_policy(provider_id)
        duration = slot_duration_minutes or policy.slot_duration_minutes
        query = SlotQuery(
            provider_id=provider_id,
            range_start=start,
            range_end=start + timedelta(minutes=duration),
            slot_duration_minutes=duration,
            buffer_minutes=buffer_minutes,
            min_lead_minutes=min_lead_minutes,
        ).resolve(policy)
        now = now or self.clock()

        reservation = Reservation(provider_id, patient_id, query.range_start, query.range_end)
        return self.guard.reserve(
            self.store,
            reservation,
            lambda txn, _start, _end: self._resolve(txn, query, now),
            notes=notes,
        )

    def cancel_appointment(self, appointment_id: int) -> Appointment:
        return self.update_appointment_status(appointment_id, AppointmentStatus.CANCELLED)

    def update_appointment_status(self, appointment_id: int, status: AppointmentStatus) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            raise AppointmentNotFound('Appointment not found.', appointment_id=appointment_id)

        with self.guard.transaction(self.store, appointment.provider_id) as txn:
            current = txn.get_appointment(appointment_id)
            if current is None:
                raise AppointmentNotFound('Appointment not found.', appointment_id=appointment_id)
            if status not in ALLOWED_STATUS_CHANGES.get(current.status, set()):
                raise InvalidStatusTransition(
                    f'Cannot change a {current.status.value} appointment to {status.value}.',
                    appointment_id=appointment_id,
                )
            updated = txn.update_appointment_status(appointment_id, status)

        logger.info('Appointment %s moved from %s to %s', appointment_id, current.status.value, status.value)
        return updated

    def _resolve(self, reader: ScheduleReader, query: SlotQuery, now: datetime) -> list[Slot]:
        template = reader.get_weekly_template(query.provider_id)
        check_template(template)

        window = expansion_window(template, query.range_start, query.range_end)
        overrides = reader.get_override_blocks(query.provider_id, window.start, window.end)
        blackouts = reader.get_blackout_periods(query.provider_id, window.start, window.end)
        appointments = reader.get_appointments(query.provider_id, window.start, window.end, BLOCKING_STATUSES)

        return resolve_open_slots(query, template, overrides, blackouts, appointments, now)
