"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time
from availability_engine.database import Base, UTCDateTime


class WeeklyHours(Base):
    """Working hours of one weekday in a provider's weekly template."""
    __tablename__ = "weekly_hours"

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, ForeignKey("provider_schedules.provider_id"), index=True, nullable=False)
    weekday = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class AvailabilityBlock(Base):
    """Extra availability, recurring weekly (weekday) or one-time (date)."""
    __tablename__ = "availability_blocks"

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, ForeignKey("provider_schedules.provider_id"), nullable=False)
    weekday = Column(Integer, nullable=True)
    date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class BlockedTime(Base):
    """Time off. Column names match ``BlackoutPeriod`` fields."""
    __tablename__ = "blocked_times"

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, ForeignKey("provider_schedules.provider_id"), nullable=False)
    reason = Column(String, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    weekday = Column(Integer, nullable=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    start_instant = Column(UTCDateTime, nullable=True)
    end_instant = Column(UTCDateTime, nullable=True)
