from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_api.core import config


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_patient_schema_checked = False


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('duration', 'ALTER TABLE appointments ADD COLUMN duration INTEGER'),
            ('room', 'ALTER TABLE appointments ADD COLUMN room VARCHAR'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('is_first_session', 'ALTER TABLE appointments ADD COLUMN is_first_session BOOLEAN DEFAULT FALSE'),
            ('repeat_weekly', 'ALTER TABLE appointments ADD COLUMN repeat_weekly BOOLEAN DEFAULT FALSE'),
            ('repeat_until', 'ALTER TABLE appointments ADD COLUMN repeat_until DATE'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP WITH TIME ZONE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_date_therapist ON appointments(date, therapist)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_date_status ON appointments(date, status)')
            )

        _appointment_schema_checked = True


def ensure_patient_schema() -> None:
    global _patient_schema_checked

    if _patient_schema_checked:
        return

    with _schema_lock:
        if _patient_schema_checked:
            return

        inspector = inspect(engine)

        if 'patients' not in inspector.get_table_names():
            _patient_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('patients')}

        with engine.begin() as connection:
            if 'main_therapist' not in existing_columns:
                connection.execute(text('ALTER TABLE patients ADD COLUMN main_therapist VARCHAR'))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_patients_name ON patients(name)')
            )

        _patient_schema_checked = True
