"""Appointment model definitions."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String
from clinic_api.database import Base


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appointment(Base):
    """Represents a booked session with a therapist."""
    __tablename__ = "appointments"

    id = Column(String, primary_key=True, default=_new_id)
    patient_id = Column(String, nullable=True)
    patient_name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    time = Column(String, nullable=False)  # HH:MM
    duration = Column(Integer, nullable=True)
    therapist = Column(String, nullable=False)
    room = Column(String, nullable=True)
    status = Column(String, nullable=True, default="confirmed")
    notes = Column(String, nullable=True)
    is_first_session = Column(Boolean, default=False)
    repeat_weekly = Column(Boolean, default=False)
    repeat_until = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "patient_name": self.patient_name,
            "date": self.date.isoformat() if self.date else None,
            "time": self.time,
            "duration": self.duration,
            "therapist": self.therapist,
            "room": self.room,
            "status": self.status,
            "notes": self.notes,
            "is_first_session": bool(self.is_first_session),
            "repeat_weekly": bool(self.repeat_weekly),
            "repeat_until": self.repeat_until.isoformat() if self.repeat_until else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
