"""Patient model definitions."""

from uuid import uuid4

from sqlalchemy import Column, String
from clinic_api.database import Base


class Patient(Base):
    """Represents a clinic patient."""
    __tablename__ = "patients"

    id = Column(String, primary_key=True, default=lambda: uuid4().hex)
    name = Column(String, nullable=False, index=True)
    main_therapist = Column(String, nullable=True)
