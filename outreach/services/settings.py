"""
SystemSetting access — the emergency pause flag and notification routing.
"""
import logging

from outreach.models.system_setting import SystemSetting

logger = logging.getLogger('services.settings')

SYSTEM_PAUSED = 'system_paused'
QUALIFYING_EMAIL = 'qualifying_notification_email'


def get_setting(session, key, default=None):
    row = session.get(SystemSetting, key)
    if row is None or row.value is None:
        return default
    return row.value


def set_setting(session, key, value, description=None):
    """Upsert one setting (flushed, not committed)."""
    row = session.get(SystemSetting, key)
    if row is None:
        row = SystemSetting(key=key, value=str(value), description=description or '')
        session.add(row)
    else:
        row.value = str(value)
        if description is not None:
            row.description = description
    session.flush()
    return row


def is_system_paused(session) -> bool:
    return get_setting(session, SYSTEM_PAUSED, '0') in ('1', 'true', 'True')


def set_system_paused(session, paused: bool):
    set_setting(session, SYSTEM_PAUSED, '1' if paused else '0', 'Emergency stop for all automated outreach')
    logger.warning("Outreach %s", 'PAUSED' if paused else 'resumed')
