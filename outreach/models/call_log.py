"""
CallLog — one row per AI call outcome reported by the voice provider.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from outreach.database import Base


class CallLog(Base):
    __tablename__ = 'call_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey('leads.id'), nullable=False)
    status = Column(Text, default='completed')          # completed / no_answer / failed
    outcome = Column(Text, nullable=True)               # qualified / wrong_number / ...
    duration_seconds = Column(Integer, default=0)
    summary = Column(Text, nullable=True)
    interest_level = Column(Text, nullable=True)
    next_action = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_call_logs_lead_status', 'lead_id', 'status'),
    )
