"""
Per-channel circuit breakers, state kept in Redis so every worker and clock
process sees the same circuit.

  closed    → sends pass through
  open      → too many consecutive send errors; sends raise CircuitOpenError
  half_open → cooldown elapsed; the next send is a probe

The scheduler treats an open circuit as a deferral, not a failure. If Redis is
unreachable the breaker reports closed.
"""
import logging
import time

from outreach.config import CHANNELS

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'

# channel → (consecutive failures to open, seconds before a probe is allowed)
CHANNEL_THRESHOLDS = {
    'sms': (5, 300),
    'email': (5, 300),
    'ai_call': (3, 600),
}


class CircuitOpenError(Exception):
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' is open — {name} sends suspended")


class ChannelBreaker:
    """
    Wraps one channel's sender.

        breaker = ChannelBreaker('sms', redis_client)
        result = breaker.call(sender.send, lead_id, template_id)
    """

    PREFIX = 'cb:channel'

    def __init__(self, name, redis_client, failure_threshold=5, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    def _opened_at(self):
        value = self.redis.get(self._key('opened_at'))
        return float(value) if value else None

    @property
    def state(self):
        try:
            if self.redis.get(self._key('state')) != OPEN:
                return CLOSED
            opened_at = self._opened_at()
            if opened_at is None or time.time() - opened_at >= self.reset_timeout:
                return HALF_OPEN
            return OPEN
        except Exception as e:
            logger.warning("Breaker '%s' state unavailable (%s), treating as closed", self.name, e)
            return CLOSED

    @property
    def failure_count(self):
        try:
            return int(self.redis.get(self._key('failures')) or 0)
        except Exception:
            return 0

    def call(self, func, *args, **kwargs):
        if self.state == OPEN:
            retry_after = None
            try:
                opened_at = self._opened_at()
                if opened_at is not None:
                    retry_after = max(0.0, self.reset_timeout - (time.time() - opened_at))
            except Exception:
                logger.debug("Breaker '%s' retry_after unavailable", self.name)
            raise CircuitOpenError(self.name, retry_after=retry_after)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def record_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.delete(self._key('state'))
            pipe.set(self._key('failures'), 0)
            pipe.hincrby(self._key('health'), 'success', 1)
            pipe.hset(self._key('health'), 'last_success', str(time.time()))
            pipe.execute()
        except Exception as e:
            logger.warning("Breaker '%s' could not record success: %s", self.name, e)

    def record_failure(self, error):
        try:
            count = self.redis.incr(self._key('failures'))
            pipe = self.redis.pipeline()
            pipe.hincrby(self._key('health'), 'failure', 1)
            pipe.hset(self._key('health'), 'last_error', str(error)[:200])
            if count >= self.failure_threshold:
                pipe.set(self._key('state'), OPEN)
                pipe.set(self._key('opened_at'), str(time.time()))
            pipe.execute()
        except Exception as e:
            logger.warning("Breaker '%s' could not record failure: %s", self.name, e)
            return

        if count >= self.failure_threshold:
            logger.warning("Circuit '%s' OPEN after %d consecutive errors: %s", self.name, count, error)
        else:
            logger.info("Circuit '%s' error %d/%d: %s", self.name, count, self.failure_threshold, error)

    def reset(self):
        try:
            pipe = self.redis.pipeline()
            pipe.delete(self._key('state'))
            pipe.delete(self._key('opened_at'))
            pipe.set(self._key('failures'), 0)
            pipe.execute()
            logger.info("Circuit '%s' reset", self.name)
        except Exception as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)

    def get_health(self):
        try:
            data = self.redis.hgetall(self._key('health')) or {}
        except Exception:
            data = {}
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': self.failure_count,
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': int(data.get('success', 0)),
            'total_failure': int(data.get('failure', 0)),
            'last_error': data.get('last_error', ''),
        }


# ── Registry ─────────────────────────────────────────────────────────────────

_registry = {}


def init_channel_breakers(redis_client):
    """Create one breaker per outbound channel."""
    for channel in CHANNELS:
        threshold, timeout = CHANNEL_THRESHOLDS[channel]
        _registry[channel] = ChannelBreaker(channel, redis_client, failure_threshold=threshold,
                                            reset_timeout=timeout)
    return dict(_registry)


def get_breaker(channel, redis_client=None):
    if channel not in _registry:
        if redis_client is None:
            from outreach.extensions import get_redis
            redis_client = get_redis()
        threshold, timeout = CHANNEL_THRESHOLDS.get(channel, (5, 300))
        _registry[channel] = ChannelBreaker(channel, redis_client, failure_threshold=threshold,
                                            reset_timeout=timeout)
    return _registry[channel]


def get_breakers():
    return {channel: get_breaker(channel) for channel in CHANNELS}


def get_health():
    return {name: breaker.get_health() for name, breaker in get_breakers().items()}


def reset_registry():
    _registry.clear()
