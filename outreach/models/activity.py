"""
Activity model — the append-only lead ledger.

Rows are never updated or deleted. The autoincrement id is the ordering source of
truth; created_at drives the daily rate-limit counts.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey, Index

from outreach.database import Base


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Activity(Base):
    __tablename__ = 'activities'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey('leads.id'), nullable=False)
    type = Column(Text, nullable=False)                 # sms_sent / score_change / ...
    channel = Column(Text, nullable=False, default='system')
    direction = Column(Text, nullable=True)             # inbound / outbound
    content = Column(Text, default='')
    details = Column('metadata', JSON, nullable=True)
    score_before = Column(Integer, nullable=True)
    score_after = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)  # naive UTC

    __table_args__ = (
        Index('ix_activities_lead', 'lead_id'),
        Index('ix_activities_outbound_day', 'channel', 'direction', 'created_at'),
    )
