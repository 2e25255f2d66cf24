import os
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_api.database import Base  # noqa: E402
from clinic_api.main import app  # noqa: E402
from clinic_api.models.appointment import Appointment  # noqa: E402
from clinic_api.models.patient import Patient  # noqa: E402
from clinic_api.routes.common import get_db  # noqa: E402


@pytest.fixture
def appointment_db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=[Patient.__table__, Appointment.__table__])

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=[Appointment.__table__, Patient.__table__])


@pytest.fixture
def add_appointment(appointment_db):
    def _add(**overrides) -> Appointment:
        fields = {
            'patient_name': 'Maria Silva',
            'date': date(2026, 1, 5),
            'time': '09:00',
            'duration': 60,
            'therapist': 'Cheila Meinertz',
            'status': 'confirmed',
        }
        fields.update(overrides)
        appointment = Appointment(**fields)
        appointment_db.add(appointment)
        appointment_db.commit()
        appointment_db.refresh(appointment)
        return appointment

    return _add


@pytest.fixture
def client(appointment_db, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('clinic_api.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('clinic_api.routes.appointment_routes.ensure_database_ready', lambda: None)
    app.dependency_overrides[get_db] = lambda: appointment_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
