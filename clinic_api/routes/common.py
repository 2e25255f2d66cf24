from fastapi import HTTPException, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from clinic_api.core import config
from clinic_api.database import SessionLocal, ensure_appointment_schema, ensure_patient_schema
from clinic_api.repositories.appointments import UpstreamFetchError
from clinic_api.scheduling.availability import DEFAULT_DURATION_MINUTES
from clinic_api.scheduling.intervals import MalformedTimeError, format_time, parse_time


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
        ensure_patient_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(getattr(exc, 'orig', None) or exc),
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def upstream_error(exc: UpstreamFetchError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def preflight_response() -> PlainTextResponse:
    return PlainTextResponse('ok', headers=config.CORS_HEADERS)


def normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def normalize_duration(value: int | None) -> int:
    if value is None:
        return DEFAULT_DURATION_MINUTES
    if value <= 0:
        raise ValueError('Duration must be a positive number of minutes.')
    return value


def normalize_time(value: str) -> str:
    try:
        return format_time(parse_time(value))
    except MalformedTimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Horário inválido: {value}',
        ) from exc
