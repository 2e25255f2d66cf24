import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_api.auth.dependencies import verify_api_token
from clinic_api.repositories.appointments import (
    DEFAULT_LIST_LIMIT,
    AppointmentFilters,
    AppointmentRepository,
    UpstreamFetchError,
)
from clinic_api.routes.common import (
    ensure_database_ready,
    get_db,
    normalize_duration,
    normalize_optional_text,
    normalize_time,
    preflight_response,
    upstream_error,
)
from clinic_api.scheduling.availability import DEFAULT_DURATION_MINUTES, AppointmentRecord

router = APIRouter(tags=['appointments'], dependencies=[Depends(verify_api_token)])

logger = logging.getLogger(__name__)

REPEAT_INTERVAL_DAYS = 7
CONFLICT_MESSAGE = 'Horário indisponível'
CONFLICT_DETAILS = 'Já existe um agendamento neste horário'
REQUIRED_FIELDS = ('patient_name', 'date', 'time', 'therapist')
UPDATABLE_FIELDS = (
    'patient_name',
    'date',
    'time',
    'duration',
    'therapist',
    'room',
    'status',
    'notes',
    'is_first_session',
)
SCHEDULE_FIELDS = ('date', 'time', 'therapist', 'duration')


class CreateAppointmentRequest(BaseModel):
    patient_name: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    therapist: Optional[str] = None
    duration: Optional[int] = DEFAULT_DURATION_MINUTES
    patient_id: Optional[str] = None
    room: Optional[str] = None
    status: Optional[str] = 'confirmed'
    notes: Optional[str] = None
    is_first_session: bool = False
    repeat_weekly: bool = False
    repeat_until: Optional[dt.date] = None

    @field_validator('date', 'repeat_until', mode='before')
    @classmethod
    def blank_date_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator('patient_name', 'time', 'therapist', 'patient_id', 'room', 'notes')
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: Optional[int]) -> int:
        return normalize_duration(value)


class UpdateAppointmentRequest(BaseModel):
    patient_name: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    duration: Optional[int] = None
    therapist: Optional[str] = None
    room: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    is_first_session: Optional[bool] = None

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError('Duration must be a positive number of minutes.')
        return value


def serialize_conflict(record: AppointmentRecord) -> dict:
    return {
        'id': record.id,
        'patient_name': record.patient_name,
        'time': record.time,
        'duration': record.duration,
    }


def conflict_error(conflicts: list[AppointmentRecord] | None = None) -> HTTPException:
    detail = {'error': CONFLICT_MESSAGE, 'details': CONFLICT_DETAILS}
    if conflicts is not None:
        detail['conflicts'] = [serialize_conflict(record) for record in conflicts]
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def require_appointment_id(appointment_id: Optional[str]) -> str:
    normalized = normalize_optional_text(appointment_id)
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='ID do agendamento é obrigatório',
        )
    return normalized


def weekly_repeat_dates(first_date: dt.date, repeat_until: dt.date) -> list[dt.date]:
    dates: list[dt.date] = []
    current = first_date + dt.timedelta(days=REPEAT_INTERVAL_DAYS)
    while current <= repeat_until:
        dates.append(current)
        current += dt.timedelta(days=REPEAT_INTERVAL_DAYS)
    return dates


def schedule_weekly_repeats(repository: AppointmentRepository, fields: dict, repeat_until: dt.date) -> int:
    """Book the same slot every week after ``fields['date']`` up to ``repeat_until``.

    Weeks where the therapist already has an overlapping booking are skipped.
    Failures are logged; the first appointment stays booked either way.
    """
    try:
        rows = []
        for repeat_date in weekly_repeat_dates(fields['date'], repeat_until):
            if repository.is_time_taken(repeat_date, fields['therapist'], fields['time'], fields['duration']):
                logger.info('Skipping weekly repeat on %s for %s: slot taken', repeat_date, fields['therapist'])
                continue
            rows.append({**fields, 'date': repeat_date, 'is_first_session': False, 'repeat_weekly': True})
        return repository.create_many(rows)
    except UpstreamFetchError:
        logger.error('Failed to create weekly repeats for %s on %s', fields['patient_name'], fields['date'])
        return 0


@router.options('/create-appointment', include_in_schema=False)
def create_appointment_preflight():
    return preflight_response()


@router.post('/create-appointment', status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    if not (data.patient_name and data.date and data.time and data.therapist):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Campos obrigatórios: ' + ', '.join(REQUIRED_FIELDS),
        )

    start_time = normalize_time(data.time)
    ensure_database_ready()
    repository = AppointmentRepository(db)

    try:
        conflicts = repository.find_conflicts(data.date, data.therapist, start_time, data.duration)
        if conflicts:
            raise conflict_error(conflicts)

        patient_id = data.patient_id or repository.find_patient_id_by_name(data.patient_name)

        fields = {
            'patient_id': patient_id,
            'patient_name': data.patient_name,
            'date': data.date,
            'time': start_time,
            'duration': data.duration,
            'therapist': data.therapist,
            'room': data.room,
            'status': data.status,
            'notes': data.notes,
            'is_first_session': data.is_first_session,
            'repeat_weekly': data.repeat_weekly,
            'repeat_until': data.repeat_until,
        }
        appointment = repository.create(**fields)
    except UpstreamFetchError as exc:
        raise upstream_error(exc) from exc

    if data.repeat_weekly and data.repeat_until:
        schedule_weekly_repeats(repository, fields, data.repeat_until)

    return {
        'success': True,
        'appointment': appointment.to_dict(),
        'message': (
            'Agendamento criado com repetição semanal'
            if data.repeat_weekly
            else 'Agendamento criado com sucesso'
        ),
    }


@router.options('/list-appointments', include_in_schema=False)
def list_appointments_preflight():
    return preflight_response()


@router.get('/list-appointments')
def list_appointments(
    date: Optional[dt.date] = Query(default=None),
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    therapist: Optional[str] = Query(default=None),
    patient_name: Optional[str] = Query(default=None),
    appointment_status: Optional[str] = Query(default=None, alias='status'),
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1),
    db: Session = Depends(get_db),
):
    filters = AppointmentFilters(
        date=date,
        start_date=start_date,
        end_date=end_date,
        therapist=normalize_optional_text(therapist),
        patient_name=normalize_optional_text(patient_name),
        status=normalize_optional_text(appointment_status),
    )

    ensure_database_ready()

    try:
        appointments = AppointmentRepository(db).list_appointments(filters, limit=limit)
    except UpstreamFetchError as exc:
        raise upstream_error(exc) from exc

    return {
        'success': True,
        'appointments': [appointment.to_dict() for appointment in appointments],
        'total': len(appointments),
        'filters': filters.to_dict(),
    }


@router.options('/manage-appointment', include_in_schema=False)
def manage_appointment_preflight():
    return preflight_response()


def load_appointment(repository: AppointmentRepository, appointment_id: str):
    try:
        appointment = repository.get(appointment_id)
    except UpstreamFetchError as exc:
        raise upstream_error(exc) from exc

    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Agendamento não encontrado',
        )
    return appointment


@router.get('/manage-appointment')
def get_appointment(
    appointment_id: Optional[str] = Query(default=None, alias='id'),
    db: Session = Depends(get_db),
):
    appointment_id = require_appointment_id(appointment_id)
    ensure_database_ready()

    appointment = load_appointment(AppointmentRepository(db), appointment_id)
    return {'success': True, 'appointment': appointment.to_dict()}


@router.api_route('/manage-appointment', methods=['PUT', 'PATCH'])
def update_appointment(
    data: UpdateAppointmentRequest,
    appointment_id: Optional[str] = Query(default=None, alias='id'),
    db: Session = Depends(get_db),
):
    appointment_id = require_appointment_id(appointment_id)

    changes = {name: value for name, value in data.model_dump(exclude_unset=True).items() if name in UPDATABLE_FIELDS}
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Nenhum campo para atualizar',
        )

    for name in REQUIRED_FIELDS:
        if name in changes:
            value = changes[name]
            if isinstance(value, str):
                value = normalize_optional_text(value)
                changes[name] = value
            if value is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f'Campo obrigatório: {name}',
                )

    if 'time' in changes:
        changes['time'] = normalize_time(changes['time'])

    ensure_database_ready()
    repository = AppointmentRepository(db)
    appointment = load_appointment(repository, appointment_id)

    try:
        if any(name in changes for name in SCHEDULE_FIELDS):
            conflicts = repository.find_conflicts(
                changes.get('date', appointment.date),
                changes.get('therapist', appointment.therapist),
                changes.get('time') or normalize_time(appointment.time),
                changes.get('duration') or appointment.duration or DEFAULT_DURATION_MINUTES,
                exclude_id=appointment.id,
            )
            if conflicts:
                raise conflict_error()

        updated = repository.update(appointment, changes)
    except UpstreamFetchError as exc:
        raise upstream_error(exc) from exc

    return {
        'success': True,
        'appointment': updated.to_dict(),
        'message': 'Agendamento atualizado com sucesso',
    }


@router.delete('/manage-appointment')
def delete_appointment(
    appointment_id: Optional[str] = Query(default=None, alias='id'),
    soft: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    appointment_id = require_appointment_id(appointment_id)
    ensure_database_ready()
    repository = AppointmentRepository(db)
    appointment = load_appointment(repository, appointment_id)

    try:
        if soft == 'true':
            cancelled = repository.soft_delete(appointment)
            return {
                'success': True,
                'appointment': cancelled.to_dict(),
                'message': 'Agendamento cancelado com sucesso',
            }

        repository.delete(appointment)
    except UpstreamFetchError as exc:
        raise upstream_error(exc) from exc

    return {'success': True, 'message': 'Agendamento deletado com sucesso'}


@router.post('/manage-appointment', include_in_schema=False)
def manage_appointment_method_not_allowed(
    appointment_id: Optional[str] = Query(default=None, alias='id'),
):
    require_appointment_id(appointment_id)
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail='Método não permitido',
    )
