from threading import Lock

import pytz
from sqlalchemy import DateTime, create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator

from availability_engine.core import config


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.SQL_ECHO,
    connect_args=_connect_args(config.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_schema_checked = False


class UTCDateTime(TypeDecorator):
    """Stores instants as naive UTC and hands them back offset-aware."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Refusing to store a datetime without a UTC offset.")
        return value.astimezone(pytz.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return pytz.utc.localize(value)
        return value.astimezone(pytz.utc)


def ensure_schema(bind=None) -> None:
    global _schema_checked

    if _schema_checked and bind is None:
        return

    with _schema_lock:
        if _schema_checked and bind is None:
            return

        target = bind or engine
        # Model modules register their tables on Base when imported.
        from availability_engine.models import appointment, availability, provider  # noqa: F401

        Base.metadata.create_all(bind=target)

        existing_tables = set(inspect(target).get_table_names())
        index_statements = [
            ('appointments', 'CREATE INDEX IF NOT EXISTS idx_appointments_provider_range ON appointments(provider_id, start_time, end_time)'),
            ('appointments', 'CREATE INDEX IF NOT EXISTS idx_appointments_provider_status ON appointments(provider_id, status)'),
            ('availability_blocks', 'CREATE INDEX IF NOT EXISTS idx_availability_blocks_provider ON availability_blocks(provider_id, date)'),
            ('blocked_times', 'CREATE INDEX IF NOT EXISTS idx_blocked_times_provider ON blocked_times(provider_id, start_date, end_date)'),
        ]

        with target.begin() as connection:
            for table_name, statement in index_statements:
                if table_name in existing_tables:
                    connection.execute(text(statement))

        if bind is None:
            _schema_checked = True
