"""
Centralized configuration — env vars, send windows, daily caps, lifecycle enums.
"""
import os


def _int_env(name, default):
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')
QUALIFYING_NOTIFICATION_EMAIL = os.getenv('QUALIFYING_NOTIFICATION_EMAIL', '')

# ── Links sent by the qualifying auto-actions ────────────────────────────────
MEETING_LINK_TEMPLATE_ID = os.getenv('MEETING_LINK_TEMPLATE_ID')
APP_LINK_TEMPLATE_ID = os.getenv('APP_LINK_TEMPLATE_ID')

# ── Timezone + send windows (local hours, [start, end)) ──────────────────────
DEFAULT_TIMEZONE = os.getenv('DEFAULT_TIMEZONE', 'America/New_York')

SEND_WINDOWS = {
    'sms':     (_int_env('SMS_WINDOW_START', 9),    _int_env('SMS_WINDOW_END', 20)),
    'email':   (_int_env('EMAIL_WINDOW_START', 8),  _int_env('EMAIL_WINDOW_END', 21)),
    'ai_call': (_int_env('CALL_WINDOW_START', 10),  _int_env('CALL_WINDOW_END', 17)),
}

# Saturday is email-only and uses this window regardless of SEND_WINDOWS
SATURDAY_EMAIL_WINDOW = (10, 14)

# ── Daily outbound caps (counted from the activity ledger) ──────────────────
DAILY_LIMITS = {
    'sms':     _int_env('SMS_DAILY_LIMIT', 200),
    'email':   _int_env('EMAIL_DAILY_LIMIT', 500),
    'ai_call': _int_env('CALLS_DAILY_LIMIT', 75),
}

# ── Scheduler ────────────────────────────────────────────────────────────────
SCHEDULER_INTERVAL_MINUTES = _int_env('SCHEDULER_INTERVAL_MINUTES', 5)
BATCH_SIZE = _int_env('BATCH_SIZE', 50)
SEND_TIMEOUT_SECONDS = _int_env('SEND_TIMEOUT_SECONDS', 30)
TICK_LOCK_TTL_SECONDS = _int_env('TICK_LOCK_TTL_SECONDS', 900)
LEAD_LOCK_TTL_SECONDS = _int_env('LEAD_LOCK_TTL_SECONDS', 120)
LEAD_LOCK_WAIT_SECONDS = _int_env('LEAD_LOCK_WAIT_SECONDS', 45)

# ── Lifecycle value sets ─────────────────────────────────────────────────────
CHANNELS = ['sms', 'email', 'ai_call']

# Sequence channel → ledger channel
LEDGER_CHANNELS = {
    'sms': 'sms',
    'email': 'email',
    'ai_call': 'call',
}

LEAD_STATUSES = [
    'new',
    'lead',
    'discovery',
    'qualifying',
    'ready_for_work',
    'bad_data',
    'do_not_call',
    'not_a_fit',
]

# The scheduler never selects leads in these statuses
TERMINAL_STATUSES = ['bad_data', 'do_not_call', 'not_a_fit']

SEQUENCE_STATUSES = [
    'pending',
    'active',
    'paused',
    'completed',
    'stopped',
]

OPT_OUT_KEYWORDS = ['STOP', 'UNSUBSCRIBE', 'QUIT', 'CANCEL', 'OPT OUT', 'OPTOUT', 'REMOVE']

# ── Call outcomes ────────────────────────────────────────────────────────────
NO_ANSWER_PENALTY_THRESHOLD = 3
LONG_CALL_SECONDS = 60
