"""
SystemSetting — shared key/value flags (emergency pause, notification routing).
"""
from sqlalchemy import Column, Text

from outreach.database import Base


class SystemSetting(Base):
    __tablename__ = 'system_settings'

    key = Column(Text, primary_key=True)
    value = Column(Text, default='')
    description = Column(Text, default='')
