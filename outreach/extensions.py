"""
Shared client instances — Redis and the RQ queue.

The Redis client does not connect until first use, so importing this module is
always safe (even with no Redis running during tests).
"""
import logging

import redis

from outreach.config import REDIS_URL

logger = logging.getLogger('outreach.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


def get_redis():
    """Return the shared Redis client (looked up at call time so tests can swap it)."""
    return redis_client


# ── RQ (lazy, avoids import-time Redis use) ──────────────────────────────────
_queue = None


def get_queue():
    global _queue
    if _queue is None:
        from rq import Queue
        # RQ payloads are pickled bytes: no decode_responses
        _queue = Queue('outreach', connection=redis.from_url(REDIS_URL))
    return _queue
