from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from consultations.auth.dependencies import get_caller
from consultations.core import config
from consultations.models.appointment import DECISION_STATUSES
from consultations.routes.common import (
    ensure_database_ready,
    get_engine,
    get_reminder_sweeper,
    parse_time_field,
    translate_errors,
)
from consultations.scheduling.engine import Page, SchedulingEngine
from consultations.scheduling.identity import Identity
from consultations.scheduling.reminders import ReminderSweeper
from consultations.scheduling.slots import format_clock_time

router = APIRouter(tags=['appointments'])

MAX_REASON_LENGTH = 500
MAX_APPOINTMENT_NOTES_LENGTH = 600


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    provider_id: int
    date: date
    start_time: time
    reason: str
    duration_minutes: int | None = None
    notes: str | None = None

    @field_validator('start_time', mode='before')
    @classmethod
    def validate_start_time(cls, value):
        return parse_time_field(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A reason for the appointment is required.')
        if len(normalized) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')
        return normalized

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError('Duration must be a positive number of minutes.')
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class DecisionRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in DECISION_STATUSES:
            raise ValueError("Status must be 'confirmed' or 'cancelled'.")
        return normalized


class UpdateAppointmentRequest(BaseModel):
    notes: str | None = None
    outcome_notes: str | None = None

    @field_validator('notes', 'outcome_notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class CompleteAppointmentRequest(BaseModel):
    outcome_notes: str | None = None

    @field_validator('outcome_notes')
    @classmethod
    def validate_outcome_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class AppointmentResponse(BaseModel):
    id: int
    requester_id: int
    provider_id: int
    date: date
    start_time: time
    duration_minutes: int
    status: str
    reason: str
    notes: str | None = None
    outcome_notes: str | None = None
    reminder_sent: bool

    class Config:
        from_attributes = True


class AppointmentPageResponse(BaseModel):
    appointments: list[AppointmentResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class DashboardStatsResponse(BaseModel):
    today_confirmed: int
    pending: int
    confirmed: int
    total: int


class ProviderDashboardResponse(BaseModel):
    appointments: list[AppointmentResponse]
    stats: DashboardStatsResponse
    total: int
    page: int
    page_size: int
    total_pages: int


class ProviderAvailabilityResponse(BaseModel):
    provider_id: int
    date: date
    available_slots: list[str]
    total_custom_slots: int
    total_available: int


class ReminderSweepResponse(BaseModel):
    sent_count: int
    selected: int
    failed: int


def build_page_response(page: Page) -> AppointmentPageResponse:
    return AppointmentPageResponse(
        appointments=[AppointmentResponse.model_validate(item) for item in page.items],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
        total_pages=page.total_pages,
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        appointment = engine.create_booking(
            caller,
            provider_id=data.provider_id,
            day=data.date,
            start_time=data.start_time,
            reason=data.reason,
            duration_minutes=data.duration_minutes,
            notes=data.notes,
        )
        return AppointmentResponse.model_validate(appointment)


@router.get('/history', response_model=AppointmentPageResponse)
def list_appointment_history(
    status_filter: str | None = Query(default=None, alias='status'),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        result = engine.list_bookings(caller, status=status_filter, page=page, page_size=page_size)
        return build_page_response(result)


@router.get('/provider', response_model=ProviderDashboardResponse)
def provider_dashboard(
    day: date | None = Query(default=None, alias='date'),
    status_filter: str | None = Query(default=None, alias='status'),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        dashboard = engine.provider_dashboard(caller, day=day, status=status_filter, page=page, page_size=page_size)
        page_response = build_page_response(dashboard.page)
        return ProviderDashboardResponse(
            appointments=page_response.appointments,
            stats=DashboardStatsResponse(**dashboard.stats),
            total=page_response.total,
            page=page_response.page,
            page_size=page_response.page_size,
            total_pages=page_response.total_pages,
        )


@router.get('/availability/{provider_id}', response_model=ProviderAvailabilityResponse)
def get_provider_availability(
    provider_id: int,
    day: date = Query(..., alias='date'),
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    del caller
    ensure_database_ready()

    with translate_errors(engine.db):
        availability = engine.get_provider_availability(provider_id, day)
        return ProviderAvailabilityResponse(
            provider_id=availability.provider_id,
            date=availability.date,
            available_slots=[format_clock_time(start) for start in availability.available_slots],
            total_custom_slots=availability.total_custom_slots,
            total_available=availability.total_available,
        )


@router.post('/reminders/send', response_model=ReminderSweepResponse)
def send_reminders(
    caller: Identity = Depends(get_caller),
    sweeper: ReminderSweeper = Depends(get_reminder_sweeper),
):
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only admins can trigger appointment reminders.',
        )

    ensure_database_ready()

    with translate_errors():
        result = sweeper.run()
        return ReminderSweepResponse(sent_count=result.sent, selected=result.selected, failed=result.failed)


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        return AppointmentResponse.model_validate(engine.get_booking(caller, appointment_id))


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        appointment = engine.update_booking_notes(
            caller,
            appointment_id,
            notes=data.notes,
            outcome_notes=data.outcome_notes,
        )
        return AppointmentResponse.model_validate(appointment)


@router.put('/{appointment_id}/decision', response_model=AppointmentResponse)
def decide_appointment(
    appointment_id: int,
    data: DecisionRequest,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        appointment = engine.decide_booking(caller, appointment_id, data.status)
        return AppointmentResponse.model_validate(appointment)


@router.put('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        return AppointmentResponse.model_validate(engine.cancel_booking(caller, appointment_id))


@router.put('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    data: CompleteAppointmentRequest,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        appointment = engine.complete_booking(caller, appointment_id, outcome_notes=data.outcome_notes)
        return AppointmentResponse.model_validate(appointment)
