"""Appointment model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from availability_engine.database import Base, UTCDateTime


class Appointment(Base):
    """Represents a booked appointment. Rows are never deleted, only re-statused."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, ForeignKey("provider_schedules.provider_id"), nullable=False)
    patient_id = Column(String, nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    status = Column(String, nullable=False, default="SCHEDULED")
    notes = Column(String, nullable=True)
