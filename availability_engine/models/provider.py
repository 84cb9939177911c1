"""Provider schedule model definitions."""

from sqlalchemy import Column, Integer, String
from availability_engine.core import config
from availability_engine.database import Base


class ProviderSchedule(Base):
    """One row per provider; locked while a booking for it is in flight."""
    __tablename__ = "provider_schedules"

    provider_id = Column(String, primary_key=True)
    timezone = Column(String, nullable=False, default=config.DEFAULT_TIMEZONE)
    slot_duration_minutes = Column(Integer, nullable=False, default=config.DEFAULT_SLOT_DURATION_MINUTES)
    buffer_minutes = Column(Integer, nullable=False, default=config.DEFAULT_BUFFER_MINUTES)
    min_lead_minutes = Column(Integer, nullable=False, default=config.DEFAULT_MIN_LEAD_MINUTES)
