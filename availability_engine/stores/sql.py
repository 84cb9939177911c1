import logging
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterable, Iterator, TypeVar

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from availability_engine.core.errors import AppointmentNotFound, UpstreamUnavailable
from availability_engine.database import SessionLocal
from availability_engine.models.appointment import Appointment as AppointmentRow
from availability_engine.models.availability import AvailabilityBlock, BlockedTime, WeeklyHours
from availability_engine.models.provider import ProviderSchedule
from availability_engine.scheduling.expander import check_template
from availability_engine.scheduling.schemas import (
    Appointment,
    AppointmentStatus,
    BlackoutPeriod,
    BookingPolicy,
    DayHours,
    OverrideBlock,
    WeeklyTemplate,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Local dates can sit one day either side of the UTC date of an instant.
DATE_SLACK = timedelta(days=1)


def _to_appointment(row: AppointmentRow) -> Appointment:
    return Appointment(
        id=row.id,
        provider_id=row.provider_id,
        patient_id=row.patient_id,
        start=row.start_time,
        end=row.end_time,
        status=AppointmentStatus(row.status),
        notes=row.notes,
    )


def _to_override(row: AvailabilityBlock) -> OverrideBlock:
    return OverrideBlock(id=row.id, weekday=row.weekday, date=row.date, start=row.start_time, end=row.end_time)


class SqlScheduleTransaction:
    """Reads and writes bound to one SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_provider(self, provider_id: str) -> ProviderSchedule | None:
        return self.session.get(ProviderSchedule, provider_id)

    def _select_provider_for_update(self, provider_id: str) -> ProviderSchedule | None:
        return self.session.execute(
            select(ProviderSchedule).where(ProviderSchedule.provider_id == provider_id).with_for_update()
        ).scalar_one_or_none()

    def lock_provider(self, provider_id: str) -> ProviderSchedule:
        provider = self._select_provider_for_update(provider_id)
        if provider is not None:
            return provider

        # A concurrent first write may insert the same row.
        try:
            with self.session.begin_nested():
                self.session.add(ProviderSchedule(provider_id=provider_id))
                self.session.flush()
        except IntegrityError:
            logger.info('Schedule row for provider %s was created concurrently', provider_id)

        return self._select_provider_for_update(provider_id)

    def get_weekly_template(self, provider_id: str) -> WeeklyTemplate:
        provider = self.get_provider(provider_id)
        rows = self.session.execute(
            select(WeeklyHours).where(WeeklyHours.provider_id == provider_id).order_by(WeeklyHours.weekday.asc())
        ).scalars().all()

        if provider is None:
            return WeeklyTemplate.default(provider_id)
        if not rows:
            return WeeklyTemplate.default(provider_id, provider.timezone)

        days = tuple(
            DayHours(weekday=row.weekday, active=row.is_active, start=row.start_time, end=row.end_time)
            for row in rows
        )
        return WeeklyTemplate(provider_id=provider_id, timezone=provider.timezone, days=days)

    def get_booking_policy(self, provider_id: str) -> BookingPolicy:
        provider = self.get_provider(provider_id)
        if provider is None:
            return BookingPolicy()

        return BookingPolicy(
            slot_duration_minutes=provider.slot_duration_minutes,
            buffer_minutes=provider.buffer_minutes,
            min_lead_minutes=provider.min_lead_minutes,
        )

    def get_override_blocks(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[OverrideBlock]:
        first_day = (range_start - DATE_SLACK).date()
        last_day = (range_end + DATE_SLACK).date()
        rows = self.session.execute(
            select(AvailabilityBlock).where(
                AvailabilityBlock.provider_id == provider_id,
                or_(
                    AvailabilityBlock.weekday.is_not(None),
                    AvailabilityBlock.date.between(first_day, last_day),
                ),
            ).order_by(AvailabilityBlock.id.asc())
        ).scalars().all()

        return [_to_override(row) for row in rows]

    def get_blackout_periods(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[BlackoutPeriod]:
        first_day = (range_start - DATE_SLACK).date()
        last_day = (range_end + DATE_SLACK).date()
        rows = self.session.execute(
            select(BlockedTime).where(
                BlockedTime.provider_id == provider_id,
                or_(
                    BlockedTime.weekday.is_not(None),
                    and_(BlockedTime.start_date <= last_day, BlockedTime.end_date >= first_day),
                    and_(BlockedTime.start_instant < range_end, BlockedTime.end_instant > range_start),
                ),
            ).order_by(BlockedTime.id.asc())
        ).scalars().all()

        return [BlackoutPeriod.model_validate(row) for row in rows]

    def get_appointments(
        self,
        provider_id: str,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        rows = self.session.execute(
            select(AppointmentRow).where(
                AppointmentRow.provider_id == provider_id,
                AppointmentRow.status.in_([status.value for status in statuses]),
                AppointmentRow.start_time < range_end,
                AppointmentRow.end_time > range_start,
            ).order_by(AppointmentRow.start_time.asc())
        ).scalars().all()

        return [_to_appointment(row) for row in rows]

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        row = self.session.get(AppointmentRow, appointment_id)
        return _to_appointment(row) if row is not None else None

    def insert_appointment(
        self,
        provider_id: str,
        patient_id: str,
        start: datetime,
        end: datetime,
        notes: str | None = None,
    ) -> Appointment:
        row = AppointmentRow(
            provider_id=provider_id,
            patient_id=patient_id,
            start_time=start,
            end_time=end,
            status=AppointmentStatus.SCHEDULED.value,
            notes=notes,
        )
        self.session.add(row)
        self.session.flush()
        return _to_appointment(row)

    def update_appointment_status(self, appointment_id: int, status: AppointmentStatus) -> Appointment:
        row = self.session.get(AppointmentRow, appointment_id)
        if row is None:
            raise AppointmentNotFound('Appointment not found.', appointment_id=appointment_id)

        row.status = status.value
        self.session.flush()
        return _to_appointment(row)


class SqlScheduleStore:
    """Schedule store backed by the SQLAlchemy models.

    Every database failure surfaces as ``UpstreamUnavailable``.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def _read(self, action: Callable[[SqlScheduleTransaction], T]) -> T:
        try:
            with self._session_factory() as session:
                return action(SqlScheduleTransaction(session))
        except SQLAlchemyError as exc:
            logger.exception('Schedule read failed.')
            raise UpstreamUnavailable('Schedule database unavailable.') from exc

    @contextmanager
    def _write(self, provider_id: str) -> Iterator[SqlScheduleTransaction]:
        try:
            with self._session_factory() as session, session.begin():
                txn = SqlScheduleTransaction(session)
                txn.lock_provider(provider_id)
                yield txn
        except SQLAlchemyError as exc:
            logger.exception('Schedule write failed for provider %s.', provider_id)
            raise UpstreamUnavailable('Schedule database unavailable.') from exc

    def transaction(self, provider_id: str) -> AbstractContextManager[SqlScheduleTransaction]:
        return self._write(provider_id)

    def get_weekly_template(self, provider_id: str) -> WeeklyTemplate:
        return self._read(lambda txn: txn.get_weekly_template(provider_id))

    def get_booking_policy(self, provider_id: str) -> BookingPolicy:
        return self._read(lambda txn: txn.get_booking_policy(provider_id))

    def get_override_blocks(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[OverrideBlock]:
        return self._read(lambda txn: txn.get_override_blocks(provider_id, range_start, range_end))

    def get_blackout_periods(self, provider_id: str, range_start: datetime, range_end: datetime) -> list[BlackoutPeriod]:
        return self._read(lambda txn: txn.get_blackout_periods(provider_id, range_start, range_end))

    def get_appointments(
        self,
        provider_id: str,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[AppointmentStatus],
    ) -> list[Appointment]:
        statuses = list(statuses)
        return self._read(lambda txn: txn.get_appointments(provider_id, range_start, range_end, statuses))

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        return self._read(lambda txn: txn.get_appointment(appointment_id))

    # Schedule maintenance. Each call replaces or adds rows in one transaction.

    def save_weekly_template(self, template: WeeklyTemplate) -> WeeklyTemplate:
        check_template(template)

        with self._write(template.provider_id) as txn:
            provider = txn.lock_provider(template.provider_id)
            provider.timezone = template.timezone
            txn.session.query(WeeklyHours).filter(WeeklyHours.provider_id == template.provider_id).delete()
            for day in template.days:
                txn.session.add(
                    WeeklyHours(
                        provider_id=template.provider_id,
                        weekday=day.weekday,
                        is_active=day.active,
                        start_time=day.start,
                        end_time=day.end,
                    )
                )

        logger.info('Saved weekly template for provider %s', template.provider_id)
        return template

    def save_booking_policy(self, provider_id: str, policy: BookingPolicy) -> BookingPolicy:
        with self._write(provider_id) as txn:
            provider = txn.lock_provider(provider_id)
            provider.slot_duration_minutes = policy.slot_duration_minutes
            provider.buffer_minutes = policy.buffer_minutes
            provider.min_lead_minutes = policy.min_lead_minutes

        return policy

    def add_override_block(self, provider_id: str, block: OverrideBlock) -> OverrideBlock:
        with self._write(provider_id) as txn:
            row = AvailabilityBlock(
                provider_id=provider_id,
                weekday=block.weekday,
                date=block.date,
                start_time=block.start,
                end_time=block.end,
            )
            txn.session.add(row)
            txn.session.flush()
            stored = _to_override(row)

        return stored

    def remove_override_block(self, provider_id: str, block_id: int) -> None:
        with self._write(provider_id) as txn:
            txn.session.query(AvailabilityBlock).filter(
                AvailabilityBlock.id == block_id,
                AvailabilityBlock.provider_id == provider_id,
            ).delete()

    def add_blackout_period(self, provider_id: str, period: BlackoutPeriod) -> BlackoutPeriod:
        with self._write(provider_id) as txn:
            row = BlockedTime(provider_id=provider_id, **period.model_dump(exclude={'id'}))
            txn.session.add(row)
            txn.session.flush()
            stored = BlackoutPeriod.model_validate(row)

        return stored

    def remove_blackout_period(self, provider_id: str, period_id: int) -> None:
        with self._write(provider_id) as txn:
            txn.session.query(BlockedTime).filter(
                BlockedTime.id == period_id,
                BlockedTime.provider_id == provider_id,
            ).delete()
