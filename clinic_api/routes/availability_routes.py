import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_api.auth.dependencies import verify_api_token
from clinic_api.repositories.appointments import AppointmentRepository, UpstreamFetchError
from clinic_api.routes.common import (
    ensure_database_ready,
    get_db,
    normalize_duration,
    normalize_optional_text,
    preflight_response,
    upstream_error,
)
from clinic_api.scheduling.availability import DEFAULT_DURATION_MINUTES, compute_availability

router = APIRouter(tags=['availability'], dependencies=[Depends(verify_api_token)])

DATE_REQUIRED_MESSAGE = 'Data é obrigatória'


class CheckAvailabilityRequest(BaseModel):
    date: Optional[dt.date] = None
    therapist: Optional[str] = None
    duration: Optional[int] = DEFAULT_DURATION_MINUTES

    @field_validator('date', mode='before')
    @classmethod
    def blank_date_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator('therapist')
    @classmethod
    def validate_therapist(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: Optional[int]) -> int:
        return normalize_duration(value)


@router.options('/check-availability', include_in_schema=False)
def check_availability_preflight():
    return preflight_response()


@router.post('/check-availability')
def check_availability(data: CheckAvailabilityRequest, db: Session = Depends(get_db)):
    if data.date is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=DATE_REQUIRED_MESSAGE,
        )

    ensure_database_ready()

    try:
        appointments = AppointmentRepository(db).list_active_for_day(data.date, data.therapist)
    except UpstreamFetchError as exc:
        raise upstream_error(exc) from exc

    result = compute_availability(data.date, data.therapist, data.duration, appointments)
    return result.to_response()
