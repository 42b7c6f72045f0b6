"""
SuppressionEntry — permanent do-not-contact list, one row per phone or email.
"""
from sqlalchemy import Column, Integer, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from outreach.database import Base


class SuppressionEntry(Base):
    __tablename__ = 'suppression_list'

    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier_type = Column(Text, nullable=False)      # phone / email
    identifier = Column(Text, nullable=False)
    reason = Column(Text, default='')
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('identifier_type', 'identifier', name='uq_suppression_identifier'),
    )
