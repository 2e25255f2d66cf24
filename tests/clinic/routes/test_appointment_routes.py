from datetime import date

import pytest

from clinic_api.models.appointment import Appointment
from clinic_api.models.patient import Patient
from clinic_api.routes.appointment_routes import weekly_repeat_dates

CREATE_URL = '/functions/v1/create-appointment'
LIST_URL = '/functions/v1/list-appointments'
MANAGE_URL = '/functions/v1/manage-appointment'


def _create_body(**overrides) -> dict:
    body = {
        'patient_name': 'Maria Silva',
        'date': '2026-01-05',
        'time': '09:00',
        'therapist': 'Cheila Meinertz',
    }
    body.update(overrides)
    return body


def test_weekly_repeat_dates_include_the_end_date() -> None:
    assert weekly_repeat_dates(date(2026, 1, 5), date(2026, 1, 26)) == [
        date(2026, 1, 12),
        date(2026, 1, 19),
        date(2026, 1, 26),
    ]
    assert weekly_repeat_dates(date(2026, 1, 5), date(2026, 1, 11)) == []


@pytest.mark.parametrize('missing', ['patient_name', 'date', 'time', 'therapist'])
def test_create_requires_core_fields(client, missing: str) -> None:
    body = _create_body()
    del body[missing]

    response = client.post(CREATE_URL, json=body)

    assert response.status_code == 400
    assert response.json() == {'error': 'Campos obrigatórios: patient_name, date, time, therapist'}


def test_create_books_appointment_and_links_patient(client, appointment_db) -> None:
    patient = Patient(name='Maria Silva')
    appointment_db.add(patient)
    appointment_db.commit()

    response = client.post(CREATE_URL, json=_create_body(patient_name='maria silva', time='9:00', duration=45))

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['message'] == 'Agendamento criado com sucesso'
    assert body['appointment']['patient_id'] == patient.id
    assert body['appointment']['time'] == '09:00'
    assert body['appointment']['duration'] == 45
    assert body['appointment']['status'] == 'confirmed'


def test_create_rejects_overlapping_booking(client, add_appointment) -> None:
    existing = add_appointment(time='09:00', duration=60)

    response = client.post(CREATE_URL, json=_create_body(time='09:30', duration=30))

    assert response.status_code == 409
    body = response.json()
    assert body['error'] == 'Horário indisponível'
    assert body['details'] == 'Já existe um agendamento neste horário'
    assert [conflict['id'] for conflict in body['conflicts']] == [existing.id]


def test_create_allows_same_time_for_another_therapist(client, add_appointment) -> None:
    add_appointment(time='09:00', duration=60, therapist='Gabi Ritter')

    response = client.post(CREATE_URL, json=_create_body())

    assert response.status_code == 201


def test_create_rejects_malformed_time(client) -> None:
    response = client.post(CREATE_URL, json=_create_body(time='9h'))

    assert response.status_code == 400
    assert response.json() == {'error': 'Horário inválido: 9h'}


def test_create_repeats_weekly_and_skips_taken_weeks(client, add_appointment, appointment_db) -> None:
    add_appointment(time='09:30', duration=60, date=date(2026, 1, 19), patient_name='Outro Paciente')

    response = client.post(
        CREATE_URL,
        json=_create_body(repeat_weekly=True, repeat_until='2026-01-26', is_first_session=True),
    )

    assert response.status_code == 201
    assert response.json()['message'] == 'Agendamento criado com repetição semanal'

    booked = appointment_db.query(Appointment).filter(Appointment.patient_name == 'Maria Silva').order_by(
        Appointment.date.asc(),
    ).all()
    assert [appointment.date for appointment in booked] == [date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 26)]
    assert booked[0].is_first_session is True
    assert all(appointment.is_first_session is False for appointment in booked[1:])
    assert all(appointment.repeat_weekly is True for appointment in booked)


def test_list_appointments_filters_and_echoes_filters(client, add_appointment) -> None:
    add_appointment(time='10:00', patient_name='Ana Souza')
    add_appointment(time='08:00', patient_name='Bruno Costa')
    add_appointment(time='09:00', patient_name='Ana Lima', therapist='Gabi Ritter')

    response = client.get(LIST_URL, params={'date': '2026-01-05', 'therapist': 'Cheila Meinertz'})

    assert response.status_code == 200
    body = response.json()
    assert body['success'] is True
    assert body['total'] == 2
    assert [appointment['time'] for appointment in body['appointments']] == ['08:00', '10:00']
    assert body['filters'] == {
        'date': '2026-01-05',
        'start_date': None,
        'end_date': None,
        'therapist': 'Cheila Meinertz',
        'patient_name': None,
        'status': None,
    }


def test_list_appointments_filters_by_status_and_limit(client, add_appointment) -> None:
    add_appointment(time='08:00', status='cancelled')
    add_appointment(time='09:00', status='confirmed')
    add_appointment(time='10:00', status='confirmed')

    body = client.get(LIST_URL, params={'status': 'confirmed', 'limit': 1}).json()

    assert [appointment['time'] for appointment in body['appointments']] == ['09:00']


def test_manage_requires_id(client) -> None:
    response = client.get(MANAGE_URL)

    assert response.status_code == 400
    assert response.json() == {'error': 'ID do agendamento é obrigatório'}


def test_manage_get_returns_404_for_unknown_id(client) -> None:
    response = client.get(MANAGE_URL, params={'id': 'missing'})

    assert response.status_code == 404
    assert response.json() == {'error': 'Agendamento não encontrado'}


def test_manage_get_returns_appointment(client, add_appointment) -> None:
    appointment = add_appointment(room='Sala 2')

    body = client.get(MANAGE_URL, params={'id': appointment.id}).json()

    assert body['success'] is True
    assert body['appointment']['room'] == 'Sala 2'


def test_manage_update_requires_fields(client, add_appointment) -> None:
    appointment = add_appointment()

    response = client.patch(MANAGE_URL, params={'id': appointment.id}, json={'unknown': 'x'})

    assert response.status_code == 400
    assert response.json() == {'error': 'Nenhum campo para atualizar'}


def test_manage_update_changes_allowed_fields(client, add_appointment) -> None:
    appointment = add_appointment()

    response = client.put(MANAGE_URL, params={'id': appointment.id}, json={'notes': 'Trazer exames', 'room': None})

    assert response.status_code == 200
    body = response.json()
    assert body['message'] == 'Agendamento atualizado com sucesso'
    assert body['appointment']['notes'] == 'Trazer exames'
    assert body['appointment']['room'] is None


def test_manage_update_rejects_move_into_taken_slot(client, add_appointment) -> None:
    add_appointment(time='10:00', duration=60)
    appointment = add_appointment(time='08:00', duration=60)

    response = client.patch(MANAGE_URL, params={'id': appointment.id}, json={'time': '10:30'})

    assert response.status_code == 409
    assert response.json() == {'error': 'Horário indisponível', 'details': 'Já existe um agendamento neste horário'}


def test_manage_update_may_extend_within_own_slot(client, add_appointment) -> None:
    appointment = add_appointment(time='08:00', duration=60)

    response = client.patch(MANAGE_URL, params={'id': appointment.id}, json={'time': '08:30', 'duration': 90})

    assert response.status_code == 200
    assert response.json()['appointment']['time'] == '08:30'


def test_manage_update_rejects_blank_required_field(client, add_appointment) -> None:
    appointment = add_appointment()

    response = client.patch(MANAGE_URL, params={'id': appointment.id}, json={'therapist': '  '})

    assert response.status_code == 400
    assert response.json() == {'error': 'Campo obrigatório: therapist'}


def test_manage_soft_delete_frees_the_slot(client, add_appointment) -> None:
    appointment = add_appointment(time='06:30', duration=870)

    response = client.delete(MANAGE_URL, params={'id': appointment.id, 'soft': 'true'})

    assert response.status_code == 200
    assert response.json()['message'] == 'Agendamento cancelado com sucesso'
    assert response.json()['appointment']['status'] == 'cancelled'

    availability = client.post('/functions/v1/check-availability', json={'date': '2026-01-05'}).json()
    assert availability['totalAvailable'] == 29


def test_manage_hard_delete_removes_row(client, add_appointment, appointment_db) -> None:
    appointment = add_appointment()
    appointment_id = appointment.id

    response = client.delete(MANAGE_URL, params={'id': appointment_id})

    assert response.status_code == 200
    assert response.json() == {'success': True, 'message': 'Agendamento deletado com sucesso'}
    assert appointment_db.query(Appointment).filter(Appointment.id == appointment_id).first() is None


def test_manage_rejects_unsupported_method(client) -> None:
    response = client.post(MANAGE_URL, params={'id': 'abc'})

    assert response.status_code == 405
    assert response.json() == {'error': 'Método não permitido'}


def test_manage_update_rejects_stored_malformed_time_when_moving(client, add_appointment) -> None:
    appointment = add_appointment(time='9h00')

    response = client.patch(MANAGE_URL, params={'id': appointment.id}, json={'therapist': 'Gabi Ritter'})

    assert response.status_code == 400
    assert response.json() == {'error': 'Horário inválido: 9h00'}


def test_manage_update_rejects_extending_into_taken_slot(client, add_appointment) -> None:
    add_appointment(time='10:00', duration=60)
    appointment = add_appointment(time='09:00', duration=60)

    response = client.patch(MANAGE_URL, params={'id': appointment.id}, json={'duration': 120})

    assert response.status_code == 409
    assert response.json()['error'] == 'Horário indisponível'


def test_manage_unsupported_method_still_requires_id(client) -> None:
    response = client.post(MANAGE_URL)

    assert response.status_code == 400
    assert response.json() == {'error': 'ID do agendamento é obrigatório'}
