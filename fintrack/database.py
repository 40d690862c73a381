from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session
from .config import settings
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import NullPool


def enable_sqlite_foreign_keys(engine) -> None:
    # SQLite ignores ON DELETE CASCADE unless enforcement is switched on per connection
    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        connect_args={"check_same_thread": False, "timeout": 60},
        poolclass=NullPool,  # avoid multiple pooled connections holding write locks
    )
    enable_sqlite_foreign_keys(engine)
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
            conn.exec_driver_sql("PRAGMA busy_timeout=60000;")
    except OperationalError:
        # Database momentarily locked (e.g. during reloader startup)
        pass
else:
    engine = create_engine(settings.database_url, pool_pre_ping=True)


def get_session():
    with Session(engine) as session:
        yield session


def open_session() -> Session:
    return Session(engine)


def get_session_factory():
    # WebSocket handlers open short sessions on demand; the connection is
    # returned to the pool between reads
    return open_session


def init_db():
    from .models import property as _property, transaction, share_visit  # noqa: F401

    SQLModel.metadata.create_all(engine)
