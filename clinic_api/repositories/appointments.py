import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.models.appointment import Appointment
from clinic_api.models.patient import Patient
from clinic_api.scheduling.availability import (
    CANCELLED_STATUS,
    DEFAULT_DURATION_MINUTES,
    AppointmentRecord,
    find_overlapping,
)
from clinic_api.scheduling.intervals import Interval, parse_time

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


class UpstreamFetchError(RuntimeError):
    """The appointment store could not be read or written."""


@dataclass
class AppointmentFilters:
    date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    therapist: Optional[str] = None
    patient_name: Optional[str] = None
    status: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat() if self.date else None,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'therapist': self.therapist,
            'patient_name': self.patient_name,
            'status': self.status,
        }


def _error_message(exc: SQLAlchemyError) -> str:
    original = getattr(exc, 'orig', None)
    return str(original or exc)


def to_record(appointment: Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        time=appointment.time,
        duration=appointment.duration,
        status=appointment.status,
        id=appointment.id,
        patient_name=appointment.patient_name,
    )


class AppointmentRepository:
    """Reads and writes the ``appointments`` table for one request."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _upstream(self, action: str, write: bool = False) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            if write:
                self.db.rollback()
            logger.exception('Appointment store failed to %s', action)
            raise UpstreamFetchError(_error_message(exc)) from exc

    def _active_on(self, day: date, therapist: Optional[str], exclude_id: Optional[str] = None):
        query = self.db.query(Appointment).filter(
            Appointment.date == day,
            (Appointment.status.is_(None)) | (Appointment.status != CANCELLED_STATUS),
        )
        if therapist:
            query = query.filter(Appointment.therapist == therapist)
        if exclude_id:
            query = query.filter(Appointment.id != exclude_id)
        return query

    def list_active_for_day(self, day: date, therapist: Optional[str] = None) -> list[AppointmentRecord]:
        with self._upstream('fetch appointments'):
            appointments = self._active_on(day, therapist).all()
        return [to_record(appointment) for appointment in appointments]

    def find_conflicts(
        self,
        day: date,
        therapist: str,
        time: str,
        duration: Optional[int],
        exclude_id: Optional[str] = None,
    ) -> list[AppointmentRecord]:
        requested = Interval.from_duration(parse_time(time), duration or DEFAULT_DURATION_MINUTES)

        with self._upstream('fetch conflicting appointments'):
            appointments = self._active_on(day, therapist, exclude_id=exclude_id).all()

        return find_overlapping([to_record(appointment) for appointment in appointments], requested)

    def list_appointments(self, filters: AppointmentFilters, limit: int = DEFAULT_LIST_LIMIT) -> list[Appointment]:
        query = self.db.query(Appointment)

        if filters.date:
            query = query.filter(Appointment.date == filters.date)
        if filters.start_date:
            query = query.filter(Appointment.date >= filters.start_date)
        if filters.end_date:
            query = query.filter(Appointment.date <= filters.end_date)
        if filters.therapist:
            query = query.filter(Appointment.therapist == filters.therapist)
        if filters.patient_name:
            query = query.filter(Appointment.patient_name.ilike(f'%{filters.patient_name}%'))
        if filters.status:
            query = query.filter(Appointment.status == filters.status)

        with self._upstream('list appointments'):
            return query.order_by(Appointment.date.asc(), Appointment.time.asc()).limit(limit).all()

    def get(self, appointment_id: str) -> Optional[Appointment]:
        with self._upstream('fetch appointment'):
            return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def find_patient_id_by_name(self, name: str) -> Optional[str]:
        with self._upstream('look up patient'):
            patient = self.db.query(Patient.id).filter(Patient.name.ilike(name)).first()
        return patient.id if patient else None

    def is_time_taken(self, day: date, therapist: str, time: str, duration: Optional[int]) -> bool:
        return bool(self.find_conflicts(day, therapist, time, duration))

    def create(self, **fields) -> Appointment:
        appointment = Appointment(**fields)
        with self._upstream('create appointment', write=True):
            self.db.add(appointment)
            self.db.commit()
            self.db.refresh(appointment)
        logger.info('Created appointment %s for %s on %s %s', appointment.id, appointment.therapist,
                    appointment.date, appointment.time)
        return appointment

    def create_many(self, rows: list[dict]) -> int:
        if not rows:
            return 0
        with self._upstream('create repeated appointments', write=True):
            self.db.add_all([Appointment(**row) for row in rows])
            self.db.commit()
        return len(rows)

    def update(self, appointment: Appointment, fields: dict) -> Appointment:
        with self._upstream('update appointment', write=True):
            for name, value in fields.items():
                setattr(appointment, name, value)
            self.db.commit()
            self.db.refresh(appointment)
        logger.info('Updated appointment %s (%s)', appointment.id, ', '.join(sorted(fields)))
        return appointment

    def soft_delete(self, appointment: Appointment) -> Appointment:
        return self.update(appointment, {'status': CANCELLED_STATUS})

    def delete(self, appointment: Appointment) -> None:
        with self._upstream('delete appointment', write=True):
            self.db.delete(appointment)
            self.db.commit()
        logger.info('Deleted appointment %s', appointment.id)
