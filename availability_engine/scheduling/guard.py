"""Reservation guard: the only place where a slot is claimed.

A booking re-checks availability and inserts the appointment inside one
provider-scoped critical section and one store transaction.
"""

import logging
import time as clock
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Callable, Iterator

from availability_engine.core import config
from availability_engine.core.errors import LockTimeout, SlotUnavailable
from availability_engine.scheduling.schemas import Appointment, Slot
from availability_engine.stores.base import ScheduleStore, ScheduleTransaction

logger = logging.getLogger(__name__)


class BookingState(str, Enum):
    REQUESTED = 'REQUESTED'
    VALIDATED = 'VALIDATED'
    COMMITTED = 'COMMITTED'
    REJECTED = 'REJECTED'


_TRANSITIONS = {
    BookingState.REQUESTED: {BookingState.VALIDATED, BookingState.REJECTED},
    BookingState.VALIDATED: {BookingState.COMMITTED, BookingState.REJECTED},
    BookingState.COMMITTED: set(),
    BookingState.REJECTED: set(),
}


class Reservation:
    """Tracks one booking attempt through its states."""

    def __init__(self, provider_id: str, patient_id: str, start: datetime, end: datetime) -> None:
        self.provider_id = provider_id
        self.patient_id = patient_id
        self.start = start
        self.end = end
        self.state = BookingState.REQUESTED
        self.appointment: Appointment | None = None
        self.rejection: SlotUnavailable | None = None

    def advance(self, state: BookingState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f'Cannot move reservation from {self.state.value} to {state.value}.')
        logger.debug(
            'Reservation %s@%s: %s -> %s',
            self.provider_id,
            self.start.isoformat(),
            self.state.value,
            state.value,
        )
        self.state = state


SlotResolver = Callable[[ScheduleTransaction, datetime, datetime], list[Slot]]


class ReservationGuard:
    def __init__(
        self,
        lock_timeout_seconds: float = config.BOOKING_LOCK_TIMEOUT_SECONDS,
        transaction_timeout_seconds: float = config.BOOKING_TRANSACTION_TIMEOUT_SECONDS,
        monotonic: Callable[[], float] = clock.monotonic,
    ) -> None:
        self.lock_timeout_seconds = lock_timeout_seconds
        self.transaction_timeout_seconds = transaction_timeout_seconds
        self._monotonic = monotonic
        self._registry_lock = Lock()
        self._provider_locks: dict[str, Lock] = {}

    def _lock_for(self, provider_id: str) -> Lock:
        with self._registry_lock:
            return self._provider_locks.setdefault(provider_id, Lock())

    @contextmanager
    def hold(self, provider_id: str) -> Iterator[float]:
        """Serialize work for one provider; yields the transaction deadline."""
        provider_lock = self._lock_for(provider_id)
        if not provider_lock.acquire(timeout=self.lock_timeout_seconds):
            logger.warning('Timed out waiting for booking lock of provider %s', provider_id)
            raise LockTimeout(
                'Could not lock the provider schedule in time. Please try again.',
                provider_id=provider_id,
            )
        try:
            yield self._monotonic() + self.transaction_timeout_seconds
        finally:
            provider_lock.release()

    def reserve(
        self,
        store: ScheduleStore,
        reservation: Reservation,
        resolve_slots: SlotResolver,
        notes: str | None = None,
    ) -> Appointment:
        """Claim ``reservation``'s slot or raise ``SlotUnavailable``.

        ``resolve_slots`` recomputes the open slots from the transaction's own
        reads. Any exception raised inside rolls the transaction back.
        """
        try:
            with self.hold(reservation.provider_id) as deadline:
                with store.transaction(reservation.provider_id) as txn:
                    open_slots = resolve_slots(txn, reservation.start, reservation.end)
                    if not any(slot.start == reservation.start and slot.end == reservation.end for slot in open_slots):
                        raise SlotUnavailable(
                            'This time is no longer available.',
                            provider_id=reservation.provider_id,
                            start=reservation.start,
                        )
                    reservation.advance(BookingState.VALIDATED)

                    if self._monotonic() > deadline:
                        raise LockTimeout(
                            'Booking took too long and was abandoned.',
                            provider_id=reservation.provider_id,
                            start=reservation.start,
                        )

                    appointment = txn.insert_appointment(
                        reservation.provider_id,
                        reservation.patient_id,
                        reservation.start,
                        reservation.end,
                        notes=notes,
                    )
        except SlotUnavailable as exc:
            reservation.rejection = exc
            reservation.advance(BookingState.REJECTED)
            logger.info(
                'Rejected booking for provider %s at %s (%s)',
                reservation.provider_id,
                reservation.start.isoformat(),
                exc.kind,
            )
            raise

        reservation.appointment = appointment
        reservation.advance(BookingState.COMMITTED)
        logger.info(
            'Booked appointment %s for provider %s at %s',
            appointment.id,
            reservation.provider_id,
            reservation.start.isoformat(),
        )
        return appointment

    @contextmanager
    def transaction(self, store: ScheduleStore, provider_id: str) -> Iterator[ScheduleTransaction]:
        """Lock the provider and open a store transaction for other writes."""
        with self.hold(provider_id) as deadline:
            with store.transaction(provider_id) as txn:
                yield txn
                if self._monotonic() > deadline:
                    raise LockTimeout('Schedule update took too long and was abandoned.', provider_id=provider_id)
