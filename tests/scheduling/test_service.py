from datetime import date, time

import pytest

from availability_engine.core.errors import (
    AppointmentNotFound,
    InvalidRange,
    InvalidStatusTransition,
    InvalidTemplate,
    SlotUnavailable,
    UpstreamUnavailable,
)
from availability_engine.scheduling.guard import ReservationGuard
from availability_engine.scheduling.schemas import (
    Appointment,
    AppointmentStatus,
    BlackoutPeriod,
    BookingPolicy,
    OverrideBlock,
    SlotQuery,
)
from availability_engine.scheduling.service import AvailabilityService
from availability_engine.stores.memory import InMemoryScheduleStore
from slot_helpers import MONDAY, PROVIDER_ID, monday_at, saturday_at, utc


def monday_query(**overrides) -> SlotQuery:
    fields = {'provider_id': PROVIDER_ID, 'range_start': monday_at(0), 'range_end': utc(2026, 1, 6)}
    fields.update(overrides)
    return SlotQuery(**fields)


def starts(slots) -> list:
    return [slot.start for slot in slots]


class ExplodingStore(InMemoryScheduleStore):
    def get_weekly_template(self, provider_id):
        raise UpstreamUnavailable('Schedule store is unavailable.')


class CountingStore(InMemoryScheduleStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def get_booking_policy(self, provider_id):
        self.calls += 1
        return super().get_booking_policy(provider_id)


def test_open_monday_yields_sixteen_slots(service: AvailabilityService) -> None:
    slots = service.get_available_slots(monday_query())

    assert len(slots) == 16
    assert slots[0].start == monday_at(9)
    assert slots[-1].start == monday_at(16, 30)


def test_lunch_blackout_removes_two_slots(service: AvailabilityService, store: InMemoryScheduleStore) -> None:
    store.add_blackout_period(
        PROVIDER_ID,
        BlackoutPeriod(reason='Lunch', start_date=date(*MONDAY), end_date=date(*MONDAY), start_time=time(12), end_time=time(13)),
    )

    slots = service.get_available_slots(monday_query())

    assert len(slots) == 14
    assert monday_at(12) not in starts(slots)
    assert monday_at(12, 30) not in starts(slots)


def test_existing_appointment_hides_slot_and_blocks_booking(service: AvailabilityService, store: InMemoryScheduleStore) -> None:
    store.add_appointment(
        Appointment(provider_id=PROVIDER_ID, patient_id='patient-0', start=monday_at(10), end=monday_at(10, 30))
    )

    assert monday_at(10) not in starts(service.get_available_slots(monday_query()))

    with pytest.raises(SlotUnavailable):
        service.book_slot(PROVIDER_ID, monday_at(10), 'patient-1')


def test_saturday_override_yields_four_slots(service: AvailabilityService, store: InMemoryScheduleStore) -> None:
    store.add_override_block(PROVIDER_ID, OverrideBlock(weekday=5, start=time(10), end=time(12)))

    slots = service.get_available_slots(
        SlotQuery(provider_id=PROVIDER_ID, range_start=saturday_at(0), range_end=utc(2026, 1, 11))
    )

    assert starts(slots) == [saturday_at(10), saturday_at(10, 30), saturday_at(11), saturday_at(11, 30)]


def test_repeated_queries_return_identical_results(service: AvailabilityService) -> None:
    assert service.get_available_slots(monday_query()) == service.get_available_slots(monday_query())


def test_partial_range_keeps_the_daily_grid(service: AvailabilityService) -> None:
    slots = service.get_available_slots(monday_query(range_start=monday_at(10, 15), range_end=monday_at(12)))

    assert starts(slots) == [monday_at(10, 30), monday_at(11), monday_at(11, 30)]


def test_query_settings_override_the_policy(service: AvailabilityService, store: InMemoryScheduleStore) -> None:
    store.save_booking_policy(PROVIDER_ID, BookingPolicy(slot_duration_minutes=60, buffer_minutes=0))

    assert len(service.get_available_slots(monday_query())) == 8
    assert len(service.get_available_slots(monday_query(slot_duration_minutes=30, buffer_minutes=10))) == 12


def test_lead_time_uses_the_service_clock(store: InMemoryScheduleStore) -> None:
    service = AvailabilityService(store, guard=ReservationGuard(1, 5), clock=lambda: monday_at(8, 45))

    slots = service.get_available_slots(monday_query(min_lead_minutes=60))

    assert slots[0].start == monday_at(10)


def test_booking_claims_slot_once(service: AvailabilityService) -> None:
    appointment = service.book_slot(PROVIDER_ID, monday_at(9), 'patient-1', notes='Checkup')

    assert appointment.status is AppointmentStatus.SCHEDULED
    assert appointment.end == monday_at(9, 30)
    assert monday_at(9) not in starts(service.get_available_slots(monday_query()))

    with pytest.raises(SlotUnavailable):
        service.book_slot(PROVIDER_ID, monday_at(9), 'patient-2')


def test_booking_every_slot_never_overbooks(service: AvailabilityService) -> None:
    for slot in service.get_available_slots(monday_query()):
        service.book_slot(PROVIDER_ID, slot.start, 'patient-1')

    assert service.get_available_slots(monday_query()) == []
    appointments = service.store.get_appointments(PROVIDER_ID, monday_at(0), utc(2026, 1, 6), [AppointmentStatus.SCHEDULED])
    assert len(appointments) == 16
    for earlier, later in zip(appointments, appointments[1:]):
        assert earlier.end <= later.start


@pytest.mark.parametrize('start', [monday_at(9, 15), monday_at(8, 30), monday_at(16, 45), saturday_at(10)])
def test_booking_off_grid_or_outside_hours_is_rejected(service: AvailabilityService, start) -> None:
    with pytest.raises(SlotUnavailable):
        service.book_slot(PROVIDER_ID, start, 'patient-1')


def test_booking_inside_lead_window_is_rejected(service: AvailabilityService) -> None:
    with pytest.raises(SlotUnavailable):
        service.book_slot(PROVIDER_ID, monday_at(9), 'patient-1', min_lead_minutes=30, now=monday_at(8, 45))


def test_booking_with_naive_start_is_invalid(service: AvailabilityService) -> None:
    with pytest.raises(InvalidRange):
        service.book_slot(PROVIDER_ID, monday_at(9).replace(tzinfo=None), 'patient-1')


def test_cancelling_reopens_the_slot(service: AvailabilityService) -> None:
    appointment = service.book_slot(PROVIDER_ID, monday_at(11), 'patient-1')

    cancelled = service.cancel_appointment(appointment.id)

    assert cancelled.status is AppointmentStatus.CANCELLED
    assert monday_at(11) in starts(service.get_available_slots(monday_query()))
    assert service.book_slot(PROVIDER_ID, monday_at(11), 'patient-2').patient_id == 'patient-2'


def test_completed_appointment_keeps_blocking(service: AvailabilityService) -> None:
    appointment = service.book_slot(PROVIDER_ID, monday_at(11), 'patient-1')

    service.update_appointment_status(appointment.id, AppointmentStatus.COMPLETED)

    assert monday_at(11) not in starts(service.get_available_slots(monday_query()))


def test_only_scheduled_appointments_change_status(service: AvailabilityService) -> None:
    appointment = service.book_slot(PROVIDER_ID, monday_at(11), 'patient-1')
    service.cancel_appointment(appointment.id)

    with pytest.raises(InvalidStatusTransition):
        service.update_appointment_status(appointment.id, AppointmentStatus.COMPLETED)

    assert service.store.get_appointment(appointment.id).status is AppointmentStatus.CANCELLED


def test_unknown_appointment_is_reported(service: AvailabilityService) -> None:
    with pytest.raises(AppointmentNotFound):
        service.cancel_appointment(999)


def test_invalid_range_fails_before_touching_the_store(fixed_now) -> None:
    store = CountingStore()
    service = AvailabilityService(store, guard=ReservationGuard(1, 5), clock=lambda: fixed_now)

    with pytest.raises(InvalidRange):
        service.get_available_slots(monday_query(range_start=monday_at(12), range_end=monday_at(9)))
    with pytest.raises(InvalidRange):
        service.get_available_slots(monday_query(range_end=utc(2026, 3, 1)))

    assert store.calls == 0


def test_store_failures_surface_as_upstream_unavailable(fixed_now) -> None:
    service = AvailabilityService(ExplodingStore(), guard=ReservationGuard(1, 5), clock=lambda: fixed_now)

    with pytest.raises(UpstreamUnavailable):
        service.get_available_slots(monday_query())
    with pytest.raises(UpstreamUnavailable):
        service.book_slot(PROVIDER_ID, monday_at(9), 'patient-1')


def test_provider_without_template_gets_default_hours(fixed_now) -> None:
    service = AvailabilityService(InMemoryScheduleStore(), guard=ReservationGuard(1, 5), clock=lambda: fixed_now)

    monday = service.get_available_slots(SlotQuery(provider_id='new-provider', range_start=monday_at(0), range_end=utc(2026, 1, 6)))
    saturday = service.get_available_slots(SlotQuery(provider_id='new-provider', range_start=saturday_at(0), range_end=utc(2026, 1, 11)))

    assert len(monday) == 16
    assert saturday == []


def test_saving_an_incomplete_template_is_rejected(store: InMemoryScheduleStore) -> None:
    template = store.get_weekly_template(PROVIDER_ID)

    with pytest.raises(InvalidTemplate):
        store.save_weekly_template(template.model_copy(update={'days': template.days[1:]}))


@pytest.mark.parametrize(
    'settings',
    [
        {'slot_duration_minutes': -5},
        {'slot_duration_minutes': 0},
        {'buffer_minutes': -1},
        {'min_lead_minutes': -10},
    ],
)
def test_booking_with_invalid_minutes_is_an_invalid_range(service: AvailabilityService, settings: dict) -> None:
    with pytest.raises(InvalidRange):
        service.book_slot(PROVIDER_ID, monday_at(9), 'patient-1', **settings)

    assert service.store.get_appointments(PROVIDER_ID, monday_at(0), utc(2026, 1, 6), list(AppointmentStatus)) == []
