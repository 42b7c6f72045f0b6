"""
Alembic environment — migrations run against DATABASE_URL with the outreach models.
"""
import importlib

from alembic import context

from outreach.database import Base, engine

for name in ('lead', 'sequence', 'activity', 'suppression', 'system_setting', 'call_log'):
    importlib.import_module(f'outreach.models.{name}')

target_metadata = Base.metadata


def run_migrations_offline():
    context.configure(url=str(engine.url), target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
