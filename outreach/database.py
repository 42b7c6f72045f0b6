"""
Database engine + session factory.

Defaults to SQLite for local dev, Postgres in production.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from outreach.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


# Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.x
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    engine = create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()
