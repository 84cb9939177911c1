from datetime import time

import pytest

from availability_engine.core.errors import AppointmentNotFound
from availability_engine.scheduling.schemas import AppointmentStatus, BookingPolicy, OverrideBlock, WeeklyTemplate
from availability_engine.stores.memory import InMemoryScheduleStore
from slot_helpers import PROVIDER_ID, monday_at, utc


def all_appointments(store: InMemoryScheduleStore) -> list:
    return store.get_appointments(PROVIDER_ID, monday_at(0), utc(2026, 1, 6), list(AppointmentStatus))


def test_transaction_writes_become_visible_on_exit(store: InMemoryScheduleStore) -> None:
    with store.transaction(PROVIDER_ID) as txn:
        appointment = txn.insert_appointment(PROVIDER_ID, 'patient-1', monday_at(9), monday_at(9, 30))

        assert txn.get_appointment(appointment.id) == appointment
        assert all_appointments(store) == []

    assert all_appointments(store) == [appointment]


def test_failed_transaction_discards_staged_writes(store: InMemoryScheduleStore) -> None:
    with pytest.raises(RuntimeError):
        with store.transaction(PROVIDER_ID) as txn:
            txn.insert_appointment(PROVIDER_ID, 'patient-1', monday_at(9), monday_at(9, 30))
            raise RuntimeError('boom')

    assert all_appointments(store) == []


def test_status_update_is_staged_until_commit(store: InMemoryScheduleStore) -> None:
    with store.transaction(PROVIDER_ID) as txn:
        appointment = txn.insert_appointment(PROVIDER_ID, 'patient-1', monday_at(9), monday_at(9, 30))

    with store.transaction(PROVIDER_ID) as txn:
        txn.update_appointment_status(appointment.id, AppointmentStatus.CANCELLED)
        assert store.get_appointment(appointment.id).status is AppointmentStatus.SCHEDULED

    assert store.get_appointment(appointment.id).status is AppointmentStatus.CANCELLED


def test_updating_unknown_appointment_raises(store: InMemoryScheduleStore) -> None:
    with pytest.raises(AppointmentNotFound):
        with store.transaction(PROVIDER_ID) as txn:
            txn.update_appointment_status(42, AppointmentStatus.CANCELLED)


def test_missing_provider_falls_back_to_defaults() -> None:
    store = InMemoryScheduleStore()

    assert store.get_weekly_template('new-provider') == WeeklyTemplate.default('new-provider')
    assert store.get_booking_policy('new-provider') == BookingPolicy()


def test_override_blocks_get_ids_and_can_be_removed(store: InMemoryScheduleStore) -> None:
    block = store.add_override_block(PROVIDER_ID, OverrideBlock(weekday=5, start=time(10), end=time(12)))

    assert block.id is not None
    assert store.get_override_blocks(PROVIDER_ID, monday_at(0), utc(2026, 1, 6)) == [block]

    store.remove_override_block(PROVIDER_ID, block.id)

    assert store.get_override_blocks(PROVIDER_ID, monday_at(0), utc(2026, 1, 6)) == []
