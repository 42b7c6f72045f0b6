"""
Sequence + SequenceStep — static outreach playbooks.

step_number is 1-based; a lead's current_step counts completed steps, so its next
step is always current_step + 1.
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from outreach.database import Base


class Sequence(Base):
    __tablename__ = 'sequences'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    description = Column(Text, default='')
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    steps = relationship(
        'SequenceStep',
        order_by='SequenceStep.step_number',
        back_populates='sequence',
    )


class SequenceStep(Base):
    __tablename__ = 'sequence_steps'

    id = Column(Integer, primary_key=True, autoincrement=True)
    sequence_id = Column(Integer, ForeignKey('sequences.id'), nullable=False)
    step_number = Column(Integer, nullable=False)
    channel = Column(Text, nullable=False)              # sms / email / ai_call
    delay_hours = Column(Integer, nullable=False, default=0)
    template_id = Column(Text, nullable=True)           # opaque to the engine
    send_window_start = Column(Integer, nullable=False, default=9)
    send_window_end = Column(Integer, nullable=False, default=20)
    send_days = Column(Text, nullable=False, default='mon,tue,wed,thu,fri')
    skip_if_replied = Column(Boolean, nullable=False, default=True)
    skip_if_score_above = Column(Integer, nullable=True)

    sequence = relationship('Sequence', back_populates='steps')

    __table_args__ = (
        UniqueConstraint('sequence_id', 'step_number', name='uq_sequence_step_number'),
    )
