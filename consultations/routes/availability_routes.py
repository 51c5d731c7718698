from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator

from consultations.auth.dependencies import get_caller
from consultations.routes.common import ensure_database_ready, get_engine, parse_time_field, translate_errors
from consultations.scheduling.engine import SchedulingEngine
from consultations.scheduling.identity import Identity

router = APIRouter(tags=['availability'])

MAX_SLOT_DURATION_MINUTES = 480


class DeclareAvailabilityRequest(BaseModel):
    date: date
    start_time: time
    end_time: time
    duration_minutes: int = 30

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def validate_clock_time(cls, value):
        return parse_time_field(value)

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0 or value > MAX_SLOT_DURATION_MINUTES:
            raise ValueError(f'Duration must be between 1 and {MAX_SLOT_DURATION_MINUTES} minutes.')
        return value


class UpdateAvailabilityRequest(BaseModel):
    is_available: bool


class AvailabilitySlotResponse(BaseModel):
    id: int
    provider_id: int
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    is_available: bool
    max_bookings: int

    class Config:
        from_attributes = True


@router.post('', response_model=list[AvailabilitySlotResponse], status_code=status.HTTP_201_CREATED)
def declare_availability(
    data: DeclareAvailabilityRequest,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        slots = engine.declare_availability(
            caller,
            day=data.date,
            window_start=data.start_time,
            window_end=data.end_time,
            duration_minutes=data.duration_minutes,
        )
        return [AvailabilitySlotResponse.model_validate(slot) for slot in slots]


@router.get('/mine', response_model=list[AvailabilitySlotResponse])
def list_my_availability(
    day: date | None = Query(default=None, alias='date'),
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        slots = engine.list_own_availability(caller, day)
        return [AvailabilitySlotResponse.model_validate(slot) for slot in slots]


@router.put('/{slot_id}', response_model=AvailabilitySlotResponse)
def update_availability_slot(
    slot_id: int,
    data: UpdateAvailabilityRequest,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        slot = engine.set_slot_availability(caller, slot_id, data.is_available)
        return AvailabilitySlotResponse.model_validate(slot)


@router.delete('/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_availability_slot(
    slot_id: int,
    caller: Identity = Depends(get_caller),
    engine: SchedulingEngine = Depends(get_engine),
):
    ensure_database_ready()

    with translate_errors(engine.db):
        engine.delete_availability_slot(caller, slot_id)
