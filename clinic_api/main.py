import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_api.core import config
from clinic_api.database import Base, engine, ensure_appointment_schema, ensure_patient_schema
from clinic_api.models import appointment, patient  # noqa: F401
from clinic_api.routes import appointment_routes, availability_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(title='Clinic Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_methods=['*'],
    allow_headers=config.CORS_ALLOW_HEADERS,
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
        ensure_patient_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else {'error': exc.detail}
    headers = {**config.CORS_HEADERS, **(exc.headers or {})}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ())[1:])
        message = error.get('msg', 'Invalid value')
        messages.append(f'{location}: {message}' if location else message)
    logger.warning('Rejected request to %s: %s', request.url.path, '; '.join(messages))
    return JSONResponse(
        status_code=400,
        content={'error': '; '.join(messages) or 'Requisição inválida'},
        headers=config.CORS_HEADERS,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception('Unhandled exception on %s', request.url.path)
    return JSONResponse(
        status_code=500,
        content={'error': 'Erro interno do servidor'},
        headers=config.CORS_HEADERS,
    )


@app.get('/')
def root():
    return {'status': 'Clinic Scheduling API Running'}


app.include_router(availability_routes.router, prefix=config.API_PREFIX)
app.include_router(appointment_routes.router, prefix=config.API_PREFIX)
