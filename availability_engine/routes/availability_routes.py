from datetime import datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError

from availability_engine.core.errors import SchedulingError
from availability_engine.database import SessionLocal, ensure_schema
from availability_engine.scheduling.guard import ReservationGuard
from availability_engine.scheduling.schemas import (
    WEEKDAY_NAMES,
    AppointmentStatus,
    DayHours,
    SlotQuery,
    WeeklyTemplate,
)
from availability_engine.scheduling.service import AvailabilityService
from availability_engine.stores.sql import SqlScheduleStore

router = APIRouter(tags=['availability'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
ERROR_STATUS_CODES = {
    'invalid_range': status.HTTP_400_BAD_REQUEST,
    'invalid_template': status.HTTP_400_BAD_REQUEST,
    'appointment_not_found': status.HTTP_404_NOT_FOUND,
    'slot_unavailable': status.HTTP_409_CONFLICT,
    'lock_timeout': status.HTTP_409_CONFLICT,
    'invalid_status_transition': status.HTTP_409_CONFLICT,
    'upstream_unavailable': status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Shared by every request so bookings for one provider queue on the same lock.
reservation_guard = ReservationGuard()


class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: int


class CreateAppointmentRequest(BaseModel):
    patient_id: str
    start_time: datetime
    slot_duration_minutes: int | None = Field(default=None, gt=0)
    buffer_minutes: int | None = Field(default=None, ge=0)
    min_lead_minutes: int | None = Field(default=None, ge=0)
    notes: str | None = None

    @field_validator('patient_id')
    @classmethod
    def validate_patient_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Patient id is required.')
        return normalized

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError('Start time must include a UTC offset.')
        if value.second or value.microsecond:
            raise ValueError('Start time must fall on a whole minute.')
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateAppointmentStatusRequest(BaseModel):
    status: AppointmentStatus

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().upper().replace('-', '_')
        return value


class AppointmentResponse(BaseModel):
    id: int
    provider_id: str
    patient_id: str
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    notes: str | None = None


class DayHoursRequest(BaseModel):
    weekday: int = Field(ge=0, le=6)
    active: bool
    start_time: time
    end_time: time

    @field_validator('weekday', mode='before')
    @classmethod
    def normalize_weekday(cls, value):
        if isinstance(value, str) and not value.strip().isdigit():
            normalized = value.strip().lower()
            if normalized not in WEEKDAY_NAMES:
                raise ValueError('Invalid weekday.')
            return WEEKDAY_NAMES.index(normalized)
        return value


class WeeklyTemplateRequest(BaseModel):
    timezone: str = 'UTC'
    days: list[DayHoursRequest]


class WeeklyTemplateResponse(BaseModel):
    provider_id: str
    timezone: str
    days: list[DayHoursRequest]


def to_http_error(exc: SchedulingError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail={'kind': exc.kind, 'message': exc.message},
    )


def ensure_database_ready() -> None:
    try:
        ensure_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL.',
        ) from exc


def get_service() -> AvailabilityService:
    ensure_database_ready()
    return AvailabilityService(SqlScheduleStore(SessionLocal), guard=reservation_guard)


def to_appointment_response(appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        provider_id=appointment.provider_id,
        patient_id=appointment.patient_id,
        start_time=appointment.start,
        end_time=appointment.end,
        status=appointment.status,
        notes=appointment.notes,
    )


def to_template_response(template: WeeklyTemplate) -> WeeklyTemplateResponse:
    return WeeklyTemplateResponse(
        provider_id=template.provider_id,
        timezone=template.timezone,
        days=[
            DayHoursRequest(weekday=day.weekday, active=day.active, start_time=day.start, end_time=day.end)
            for day in sorted(template.days, key=lambda day: day.weekday)
        ],
    )


@router.get('/providers/{provider_id}/slots', response_model=list[SlotResponse])
def list_available_slots(
    provider_id: str,
    range_start: datetime = Query(...),
    range_end: datetime = Query(...),
    slot_duration_minutes: int | None = Query(default=None, gt=0),
    buffer_minutes: int | None = Query(default=None, ge=0),
    min_lead_minutes: int | None = Query(default=None, ge=0),
    service: AvailabilityService = Depends(get_service),
):
    try:
        slots = service.get_available_slots(
            SlotQuery(
                provider_id=provider_id,
                range_start=range_start,
                range_end=range_end,
                slot_duration_minutes=slot_duration_minutes,
                buffer_minutes=buffer_minutes,
                min_lead_minutes=min_lead_minutes,
            )
        )
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return [
        SlotResponse(
            start_time=slot.start,
            end_time=slot.end,
            duration_minutes=int(slot.duration.total_seconds() // 60),
        )
        for slot in slots
    ]


@router.post(
    '/providers/{provider_id}/appointments',
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_appointment(
    provider_id: str,
    data: CreateAppointmentRequest,
    service: AvailabilityService = Depends(get_service),
):
    try:
        appointment = service.book_slot(
            provider_id,
            data.start_time,
            data.patient_id,
            slot_duration_minutes=data.slot_duration_minutes,
            buffer_minutes=data.buffer_minutes,
            min_lead_minutes=data.min_lead_minutes,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return to_appointment_response(appointment)


@router.post('/appointments/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(appointment_id: int, service: AvailabilityService = Depends(get_service)):
    try:
        appointment = service.cancel_appointment(appointment_id)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return to_appointment_response(appointment)


@router.patch('/appointments/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    service: AvailabilityService = Depends(get_service),
):
    try:
        appointment = service.update_appointment_status(appointment_id, data.status)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return to_appointment_response(appointment)


@router.get('/providers/{provider_id}/weekly-template', response_model=WeeklyTemplateResponse)
def get_weekly_template(provider_id: str, service: AvailabilityService = Depends(get_service)):
    try:
        template = service.store.get_weekly_template(provider_id)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return to_template_response(template)


@router.put('/providers/{provider_id}/weekly-template', response_model=WeeklyTemplateResponse)
def save_weekly_template(
    provider_id: str,
    data: WeeklyTemplateRequest,
    service: AvailabilityService = Depends(get_service),
):
    template = WeeklyTemplate(
        provider_id=provider_id,
        timezone=data.timezone,
        days=tuple(
            DayHours(weekday=day.weekday, active=day.active, start=day.start_time, end=day.end_time)
            for day in data.days
        ),
    )

    try:
        saved = service.store.save_weekly_template(template)
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return to_template_response(saved)


@router.post('/providers/{provider_id}/weekly-template/copy-to-weekdays', response_model=WeeklyTemplateResponse)
def copy_hours_to_weekdays(
    provider_id: str,
    weekday: int = Query(..., ge=0, le=6),
    service: AvailabilityService = Depends(get_service),
):
    try:
        template = service.store.get_weekly_template(provider_id)
        saved = service.store.save_weekly_template(template.copy_to_weekdays(weekday))
    except SchedulingError as exc:
        raise to_http_error(exc) from exc

    return to_template_response(saved)
