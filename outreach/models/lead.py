"""
Lead model — the unit of work moved through an outreach sequence.

Written only by the scoring engine (score/tier), the tier router
(status/sequence_status/opt-outs) and the scheduler (step pointer, next action,
send counters).
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from outreach.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(Text, default='')
    last_name = Column(Text, default='')
    company_name = Column(Text, default='')
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default='new')
    score = Column(Integer, nullable=False, default=0)
    score_tier = Column(Text, nullable=False, default='cold')

    sequence_id = Column(Integer, ForeignKey('sequences.id'), nullable=True)
    current_step = Column(Integer, nullable=False, default=0)
    sequence_status = Column(Text, nullable=False, default='pending')
    next_action_at = Column(DateTime, nullable=True)  # naive UTC

    sms_opt_out = Column(Boolean, nullable=False, default=False)
    email_opt_out = Column(Boolean, nullable=False, default=False)
    call_opt_out = Column(Boolean, nullable=False, default=False)

    replied = Column(Boolean, nullable=False, default=False)
    meeting_booked = Column(Boolean, nullable=False, default=False)
    app_downloaded = Column(Boolean, nullable=False, default=False)
    last_contacted_at = Column(DateTime, nullable=True)
    last_reply_at = Column(DateTime, nullable=True)

    total_sms_sent = Column(Integer, nullable=False, default=0)
    total_emails_sent = Column(Integer, nullable=False, default=0)
    total_calls_made = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_leads_ready', 'sequence_status', 'next_action_at'),
        Index('ix_leads_phone', 'phone'),
        Index('ix_leads_email', 'email'),
    )
