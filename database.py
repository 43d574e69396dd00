"""
Database configuration and session management.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from config import settings


def create_db_engine(url: str, **kwargs):
    """
    Build an engine for the given URL.

    MySQL gets pooling and driver timeouts. SQLite is switched to explicit
    BEGIN so per-record savepoints behave under pysqlite.
    """
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            **kwargs
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_size=10,
        max_overflow=20,
        connect_args={
            "connect_timeout": 10,
            "read_timeout": 30,
            "write_timeout": 30
        },
        **kwargs
    )


engine = create_db_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db(bind=None):
    """Create tables that do not exist yet."""
    # models registers the tables on Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


# Dependency to get database session
def get_db():
    """
    Database session dependency for FastAPI.
    Yields a session and closes it after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
