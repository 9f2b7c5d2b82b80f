"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()

CURRENT_CALLS = "currentCalls"


class CallSessionRecord(Base):
    """Link between one phone call and its conferencing session."""

    __tablename__ = "call_sessions"

    meeting_id = Column(String, primary_key=True)
    transaction_id = Column(String, unique=True, index=True, nullable=False)
    leg_a = Column(String, nullable=True)  # Caller leg
    leg_b = Column(String, nullable=True)  # Bot leg
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CallCounterRecord(Base):
    """Named occupancy gauge."""

    __tablename__ = "call_counters"

    name = Column(String, primary_key=True)
    calls = Column(Integer, default=0, nullable=False)
