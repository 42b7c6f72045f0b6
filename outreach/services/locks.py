"""
Redis locks for the scheduler tick and for per-lead mutations.

Both context managers yield True when the caller may proceed. If Redis itself is
unreachable they fail open (yield True) and log a warning; row locks in the
database still serialize writers in that case.
"""
import logging
from contextlib import contextmanager

from redis.exceptions import LockError, RedisError

from outreach.config import LEAD_LOCK_TTL_SECONDS, LEAD_LOCK_WAIT_SECONDS, TICK_LOCK_TTL_SECONDS
from outreach.extensions import get_redis

logger = logging.getLogger('services.locks')

TICK_LOCK_KEY = 'lock:scheduler:tick'


def lead_lock_key(lead_id):
    return f'lock:lead:{lead_id}'


@contextmanager
def _redis_lock(name, ttl, wait_seconds=None):
    """wait_seconds=None → non-blocking attempt."""
    try:
        lock = get_redis().lock(name, timeout=ttl, blocking_timeout=wait_seconds)
        acquired = lock.acquire(blocking=wait_seconds is not None)
    except RedisError as e:
        logger.warning("Redis unavailable for %s (%s), proceeding without lock", name, e)
        yield True
        return

    if not acquired:
        yield False
        return

    try:
        yield True
    finally:
        try:
            lock.release()
        except LockError:
            logger.warning("Lock %s expired before release", name)
        except RedisError as e:
            logger.warning("Could not release %s: %s", name, e)


def lead_lock(lead_id, wait=True, ttl=LEAD_LOCK_TTL_SECONDS, wait_seconds=LEAD_LOCK_WAIT_SECONDS):
    """Serialize mutations of one lead. wait=False is the scheduler's skip-if-busy mode."""
    return _redis_lock(lead_lock_key(lead_id), ttl, wait_seconds if wait else None)


def tick_lock(ttl=TICK_LOCK_TTL_SECONDS):
    """Skip-if-busy lock shared by every clock process and the manual trigger."""
    return _redis_lock(TICK_LOCK_KEY, ttl)
