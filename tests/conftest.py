"""Shared test fixtures."""
from datetime import datetime, timezone

import pytest
from unittest.mock import patch, MagicMock
from redis.exceptions import LockError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from outreach.database import Base

# Modules that call get_session() themselves
SESSION_USERS = [
    'outreach.lifecycle.senders',
    'outreach.lifecycle.scheduler',
    'outreach.services.lifecycle',
    'outreach.tasks',
]

# 2026-10-19 is a Monday; New York is on EDT (UTC-4)
MONDAY_10AM = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)


class FakeLock:
    def __init__(self, redis, name):
        self._redis = redis
        self.name = name

    def acquire(self, blocking=None, blocking_timeout=None, **kwargs):
        if self.name in self._redis.locks:
            return False
        self._redis.locks.add(self.name)
        return True

    def release(self):
        if self.name not in self._redis.locks:
            raise LockError("Cannot release an unlocked lock")
        self._redis.locks.discard(self.name)


class FakeRedis:
    """Minimal in-memory Redis: strings, hashes, pipelines and locks."""

    def __init__(self):
        self.store = {}
        self.hashes = {}
        self.locks = set()

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, nx=False, ex=None, px=None):
        if nx and key in self.store:
            return None
        self.store[key] = str(value)
        return True

    def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)
            self.hashes.pop(key, None)

    def hset(self, key, field=None, value=None, mapping=None):
        h = self.hashes.setdefault(key, {})
        if field is not None:
            h[field] = str(value)
        for k, v in (mapping or {}).items():
            h[k] = str(v)

    def hincrby(self, key, field, amount=1):
        h = self.hashes.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def pipeline(self):
        return FakePipeline(self)

    def lock(self, name, timeout=None, blocking_timeout=None, **kwargs):
        return FakeLock(self, name)


class FakePipeline:
    """Queues calls and runs them against the FakeRedis on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self._redis, name)(*args, **kwargs) for name, args, kwargs in self._ops]
        self._ops = []
        return results


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created. One connection shared across threads."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import outreach.models.sequence
    import outreach.models.lead
    import outreach.models.activity
    import outreach.models.suppression
    import outreach.models.system_setting
    import outreach.models.call_log
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route every get_session() call to the test session.

    close() is disabled so code under test that closes its session in a
    finally block doesn't detach objects the test still inspects.
    """
    import importlib
    _real_close = db_session.close
    db_session.close = lambda: None
    patchers = []
    for module in SESSION_USERS:
        importlib.import_module(module)
        p = patch(f'{module}.get_session', return_value=db_session)
        p.start()
        patchers.append(p)
    yield db_session
    for p in patchers:
        p.stop()
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def fake_redis():
    fake = FakeRedis()
    with patch('outreach.extensions.redis_client', fake):
        yield fake


@pytest.fixture(autouse=True)
def reset_registries():
    from outreach.lifecycle.senders import reset_senders
    from outreach.services.circuit_breaker import reset_registry
    reset_senders()
    reset_registry()
    yield
    reset_senders()
    reset_registry()


@pytest.fixture(autouse=True)
def mock_queue():
    """RQ queue stand-in; inspect .enqueue.call_args_list for dispatched effects."""
    queue = MagicMock()
    with patch('outreach.tasks.get_queue', return_value=queue):
        yield queue


@pytest.fixture
def app():
    """Flask test app."""
    from outreach import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def make_sequence(db_session):
    """Factory fixture — a Sequence with the given steps (dicts of SequenceStep columns)."""
    from outreach.models.sequence import Sequence, SequenceStep

    def _make(steps=None, name='Test sequence'):
        if steps is None:
            steps = [
                {'channel': 'sms', 'template_id': 'sms_1'},
                {'channel': 'email', 'template_id': 'email_1', 'delay_hours': 24,
                 'send_window_start': 8, 'send_window_end': 21},
                {'channel': 'ai_call', 'delay_hours': 48, 'send_window_start': 10, 'send_window_end': 17},
            ]
        sequence = Sequence(name=name)
        db_session.add(sequence)
        db_session.flush()
        for number, step in enumerate(steps, start=1):
            db_session.add(SequenceStep(sequence_id=sequence.id, step_number=number, **step))
        db_session.commit()
        return sequence
    return _make


@pytest.fixture
def make_lead(db_session):
    """Factory fixture — a persisted Lead, active and due by default."""
    from outreach.models.lead import Lead

    def _make(**overrides):
        defaults = dict(
            first_name='Dana',
            last_name='Whitfield',
            company_name='Whitfield Plumbing',
            phone='+15555550101',
            email='dana@example.com',
            sequence_status='active',
            current_step=0,
            next_action_at=datetime(2026, 10, 19, 13, 0),  # naive UTC, before MONDAY_10AM
        )
        defaults.update(overrides)
        lead = Lead(**defaults)
        db_session.add(lead)
        db_session.commit()
        return lead
    return _make
