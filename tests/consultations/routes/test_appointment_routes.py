from datetime import date, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from consultations.routes.appointment_routes import (
    CreateAppointmentRequest,
    DecisionRequest,
    UpdateAppointmentRequest,
    cancel_appointment,
    create_appointment,
    decide_appointment,
    get_appointment,
    get_provider_availability,
    list_appointment_history,
    provider_dashboard,
    send_reminders,
    update_appointment,
)
from consultations.routes.common import translate_errors
from consultations.scheduling.errors import Forbidden
from consultations.scheduling.reminders import ReminderSweeper

TUESDAY = date(2026, 3, 3)


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('consultations.routes.appointment_routes.ensure_database_ready', lambda: None)


def request_for(provider, start: str = '09:00', reason: str = 'Annual check-up') -> CreateAppointmentRequest:
    return CreateAppointmentRequest(provider_id=provider.id, date=TUESDAY, start_time=start, reason=reason)


def test_create_appointment_request_normalizes_fields() -> None:
    request = CreateAppointmentRequest(
        provider_id=3,
        date=TUESDAY,
        start_time='09:30',
        reason='  Back pain  ',
        notes='   ',
    )

    assert request.start_time == time(9, 30)
    assert request.reason == 'Back pain'
    assert request.notes is None


@pytest.mark.parametrize(
    'overrides',
    [
        {'start_time': '9h30'},
        {'reason': '   '},
        {'reason': 'x' * 501},
        {'duration_minutes': 0},
        {'notes': 'n' * 601},
    ],
)
def test_create_appointment_request_rejects_invalid_fields(overrides: dict) -> None:
    fields = {'provider_id': 3, 'date': TUESDAY, 'start_time': '09:30', 'reason': 'Check-up', **overrides}

    with pytest.raises(ValidationError):
        CreateAppointmentRequest(**fields)


def test_decision_request_normalizes_status() -> None:
    assert DecisionRequest(status=' Confirmed ').status == 'confirmed'

    with pytest.raises(ValidationError):
        DecisionRequest(status='completed')


def test_create_appointment_returns_requested_booking(scheduling, people) -> None:
    response = create_appointment(request_for(people.provider), caller=people.requester, engine=scheduling)

    assert response.status == 'requested'
    assert response.start_time == time(9, 0)
    assert response.requester_id == people.requester.id


def test_create_appointment_maps_conflict_to_409(scheduling, people) -> None:
    create_appointment(request_for(people.provider), caller=people.requester, engine=scheduling)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(request_for(people.provider), caller=people.other_requester, engine=scheduling)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is already booked.'


def test_create_appointment_in_the_past_is_400(scheduling, people) -> None:
    request = CreateAppointmentRequest(provider_id=people.provider.id, date=date(2026, 3, 1), start_time='10:00', reason='Late')

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(request, caller=people.requester, engine=scheduling)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointments must be scheduled in the future.'


def test_get_appointment_access_rules(scheduling, people) -> None:
    created = create_appointment(request_for(people.provider), caller=people.requester, engine=scheduling)

    assert get_appointment(created.id, caller=people.admin, engine=scheduling).id == created.id

    with pytest.raises(HTTPException) as forbidden:
        get_appointment(created.id, caller=people.other_requester, engine=scheduling)
    assert forbidden.value.status_code == 403

    with pytest.raises(HTTPException) as missing:
        get_appointment(999, caller=people.requester, engine=scheduling)
    assert missing.value.status_code == 404
    assert missing.value.detail == 'Appointment not found.'


def test_decide_cancel_and_update_flow(scheduling, people) -> None:
    created = create_appointment(request_for(people.provider), caller=people.requester, engine=scheduling)

    confirmed = decide_appointment(
        created.id, DecisionRequest(status='confirmed'), caller=people.provider, engine=scheduling
    )
    assert confirmed.status == 'confirmed'

    updated = update_appointment(
        created.id, UpdateAppointmentRequest(notes='Fasting since 8pm'), caller=people.requester, engine=scheduling
    )
    assert updated.notes == 'Fasting since 8pm'

    cancelled = cancel_appointment(created.id, caller=people.requester, engine=scheduling)
    assert cancelled.status == 'cancelled'

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(created.id, caller=people.requester, engine=scheduling)
    assert exception_info.value.status_code == 409


def test_decide_by_requester_is_403(scheduling, people) -> None:
    created = create_appointment(request_for(people.provider), caller=people.requester, engine=scheduling)

    with pytest.raises(HTTPException) as exception_info:
        decide_appointment(created.id, DecisionRequest(status='confirmed'), caller=people.requester, engine=scheduling)

    assert exception_info.value.status_code == 403


def test_history_response_is_paginated(scheduling, people) -> None:
    for start in ('09:00', '09:30', '10:00'):
        create_appointment(request_for(people.provider, start=start), caller=people.requester, engine=scheduling)

    response = list_appointment_history(
        status_filter=None, page=1, page_size=2, caller=people.requester, engine=scheduling
    )

    assert [appointment.start_time for appointment in response.appointments] == [time(10, 0), time(9, 30)]
    assert (response.total, response.total_pages, response.page) == (3, 2, 1)


def test_history_rejects_unknown_status(scheduling, people) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_appointment_history(status_filter='lost', page=1, page_size=10, caller=people.requester, engine=scheduling)

    assert exception_info.value.status_code == 400


def test_provider_dashboard_route(scheduling, people) -> None:
    create_appointment(request_for(people.provider), caller=people.requester, engine=scheduling)

    response = provider_dashboard(
        day=None, status_filter=None, page=1, page_size=10, caller=people.provider, engine=scheduling
    )
    assert response.stats.pending == 1
    assert len(response.appointments) == 1

    with pytest.raises(HTTPException) as exception_info:
        provider_dashboard(day=None, status_filter=None, page=1, page_size=10, caller=people.requester, engine=scheduling)
    assert exception_info.value.status_code == 403


def test_provider_availability_route_formats_start_times(scheduling, people) -> None:
    create_appointment(request_for(people.provider, start='09:00'), caller=people.requester, engine=scheduling)

    response = get_provider_availability(people.provider.id, day=TUESDAY, caller=people.requester, engine=scheduling)

    assert response.available_slots[:2] == ['09:30', '10:00']
    assert response.total_available == 15
    assert response.total_custom_slots == 0


def test_send_reminders_is_admin_only(session_factory, notifier, clock, people) -> None:
    sweeper = ReminderSweeper(session_factory, notifier, clock)

    with pytest.raises(HTTPException) as exception_info:
        send_reminders(caller=people.provider, sweeper=sweeper)
    assert exception_info.value.status_code == 403

    response = send_reminders(caller=people.admin, sweeper=sweeper)
    assert response.sent_count == 0


def test_send_reminders_reports_sent_count(scheduling, session_factory, notifier, clock, people) -> None:
    created = create_appointment(request_for(people.provider), caller=people.requester, engine=scheduling)
    decide_appointment(created.id, DecisionRequest(status='confirmed'), caller=people.provider, engine=scheduling)

    response = send_reminders(caller=people.admin, sweeper=ReminderSweeper(session_factory, notifier, clock))

    assert (response.sent_count, response.selected, response.failed) == (1, 1, 0)


def test_translate_errors_maps_database_failures_to_503() -> None:
    class _Session:
        rolled_back = False

        def rollback(self) -> None:
            self.rolled_back = True

    session = _Session()

    with pytest.raises(HTTPException) as exception_info:
        with translate_errors(session):
            raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    assert exception_info.value.status_code == 503
    assert session.rolled_back is True


def test_translate_errors_uses_error_status_code() -> None:
    with pytest.raises(HTTPException) as exception_info:
        with translate_errors():
            raise Forbidden('Nope.')

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Nope.'
