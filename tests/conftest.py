import os
from datetime import datetime

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from availability_engine.scheduling.guard import ReservationGuard  # noqa: E402
from availability_engine.scheduling.service import AvailabilityService  # noqa: E402
from availability_engine.stores.memory import InMemoryScheduleStore  # noqa: E402
from slot_helpers import monday_only_template, utc  # noqa: E402


@pytest.fixture
def fixed_now() -> datetime:
    return utc(2026, 1, 1, 8, 0)


@pytest.fixture
def store() -> InMemoryScheduleStore:
    memory_store = InMemoryScheduleStore()
    memory_store.save_weekly_template(monday_only_template())
    return memory_store


@pytest.fixture
def service(store: InMemoryScheduleStore, fixed_now: datetime) -> AvailabilityService:
    guard = ReservationGuard(lock_timeout_seconds=1, transaction_timeout_seconds=5)
    return AvailabilityService(store, guard=guard, clock=lambda: fixed_now)
