import itertools
import logging
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Iterable, Iterator

from availability_engine.core.errors import AppointmentNotFound
from availability_engine.scheduling.expander import check_template
from availability_engine.scheduling.schemas import (
    Appointment,
    AppointmentStatus,
    BlackoutPeriod,
    BookingPolicy,
    OverrideBlock,
    WeeklyTemplate,
)

logger = logging.getLogger(__name__)


class InMemoryScheduleStore:
    """Process-local store holding immutable snapshots per provider.

    Writes made inside ``transaction`` are staged and only become visible to
    other readers when the block exits cleanly.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._ids = itertools.count(1)
        self._templates: dict[str, WeeklyTemplate] = {}
        self._policies: dict[str, BookingPolicy] = {}
        self._overrides: dict[str, list[OverrideBlock]] = {}
        self._blackouts: dict[str, list[BlackoutPeriod]] = {}
        self._appointments: dict[int, Appointment] = {}

    def _next_id(self) -> int:
        with self._lock:
            return next(self._ids)

    # Schedule maintenance

    def save_weekly_template(self, template: WeeklyTemplate) -> WeeklyTemplate:
        check_template(template)
        with self._lock:
            self._templates[template.provider_id] = template
        return template

    def save_booking_policy(self, provider_id: str, policy: BookingPolicy) -> BookingPolicy:
        with self._lock:
            self._policies[provider_id] = policy
        return policy

    def add_override_block(self, provider_id: str, block: OverrideBlock) -> OverrideBlock:
        stored = block.model_copy(update={'id': block.id or self._next_id()})
        with self._lock:
            self._overrides.setdefault(provider_id, []).append(stored)
        return stored

    def remove_override_block(self, provider_id: str, block_id: int) -> None:
        with self._lock:
            blocks = self._overrides.get(provider_id, [])
            self._overrides[provider_id] = [block for block in blocks if block.id != block_id]

    def add_blackout_period(self, provider_id: str, period: BlackoutPeriod) -> BlackoutPeriod:
        stored = period.model_copy(update={'id': period.id or self._next_id()})
        with self._lock:
            self._blackouts.setdefault(provider_id, []).append(stored)
        return stored

    def remove_blackout_period(self, provider_id: str, period_id: int) -> None:
        with self._lock:
            periods = self._blackouts.get(provider_id, [])
            self._blackouts[provider_id] = [period for period in periods if period.id != period_id]

    def add_appointment(self, appointment: Appointment) -> Appointment:
        stored = appointment.model_copy(update={'id': appointment.id or self._next_id()})
        with self._lock:
            self._appointments[stored.id] = stored
        return stored

    # Reads

    def get_weekly_template(self, provider_id: str) -> WeeklyTemplate:
        with self._lock:
            template = self._templates.get(provider_id)
        return template or WeeklyTemplate.default(provider_id)

    def get_booking_policy(self, provider_id: str) -> BookingPolicy:
        with self._lock:
            return self._policies.get(provider_id) or BookingPolicy()

    def get_override_blocks(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[OverrideBlock]:
        with self._lock:
            return list(self._overrides.get(provider_id, []))

    def get_blackout_periods(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[BlackoutPeriod]:
        with self._lock:
            return list(self._blackouts.get(provider_id, []))

    def get_appointments(
        self,
        provider_id: str,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        with self._lock:
            appointments = list(self._appointments.values())
        return _select_appointments(appointments, provider_id, range_start, range_end, statuses)

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        with self._lock:
            return self._appointments.get(appointment_id)

    @contextmanager
    def transaction(self, provider_id: str) -> Iterator['_MemoryTransaction']:
        txn = _MemoryTransaction(self, provider_id)
        yield txn
        with self._lock:
            self._appointments.update(txn.pending)
        logger.debug('Committed %d appointment changes for provider %s', len(txn.pending), provider_id)


class _MemoryTransaction:
    def __init__(self, store: InMemoryScheduleStore, provider_id: str) -> None:
        self._store = store
        self.provider_id = provider_id
        self.pending: dict[int, Appointment] = {}

    def get_weekly_template(self, provider_id: str) -> WeeklyTemplate:
        return self._store.get_weekly_template(provider_id)

    def get_booking_policy(self, provider_id: str) -> BookingPolicy:
        return self._store.get_booking_policy(provider_id)

    def get_override_blocks(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[OverrideBlock]:
        return self._store.get_override_blocks(provider_id, range_start, range_end)

    def get_blackout_periods(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[BlackoutPeriod]:
        return self._store.get_blackout_periods(provider_id, range_start, range_end)

    def get_appointments(
        self,
        provider_id: str,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        with self._store._lock:
            merged = dict(self._store._appointments)
        merged.update(self.pending)
        return _select_appointments(merged.values(), provider_id, range_start, range_end, statuses)

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        if appointment_id in self.pending:
            return self.pending[appointment_id]
        return self._store.get_appointment(appointment_id)

    def insert_appointment(
        self,
        provider_id: str,
        patient_id: str,
        start: datetime,
        end: datetime,
        notes: str | None = None,
    ) -> Appointment:
        appointment = Appointment(
            id=self._store._next_id(),
            provider_id=provider_id,
            patient_id=patient_id,
            start=start,
            end=end,
            status=AppointmentStatus.SCHEDULED,
            notes=notes,
        )
        self.pending[appointment.id] = appointment
        return appointment

    def update_appointment_status(self, appointment_id: int, status: AppointmentStatus) -> Appointment:
        appointment = self.get_appointment(appointment_id)
        if appointment is None:
            raise AppointmentNotFound('Appointment not found.', appointment_id=appointment_id)

        updated = appointment.model_copy(update={'status': status})
        self.pending[appointment_id] = updated
        return updated


def _select_appointments(
    appointments: Iterable[Appointment],
    provider_id: str,
    range_start: datetime,
    range_end: datetime,
    statuses: Iterable[AppointmentStatus],
) -> list[Appointment]:
    wanted = set(statuses)
    selected = [
        appointment
        for appointment in appointments
        if appointment.provider_id == provider_id
        and appointment.status in wanted
        and appointment.start < range_end
        and appointment.end > range_start
    ]
    return sorted(selected, key=lambda appointment: appointment.start)
