from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .settings import config_settings


def build_engine(database_url: str, timeout: float = config_settings.DB_TIMEOUT_SECONDS) -> Engine:
    """
    Creates an engine whose storage calls can not hang forever.

    SQLite gets a lock wait timeout and foreign key enforcement (needed for the
    cascade deletes), PostgreSQL gets a connect and a statement timeout.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=config_settings.SQL_ECHO,
            # Only needed for SQLite to handle concurrent requests
            connect_args={"check_same_thread": False, "timeout": timeout},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        database_url,
        echo=config_settings.SQL_ECHO,
        pool_pre_ping=True,
        pool_timeout=config_settings.DB_POOL_TIMEOUT_SECONDS,
        connect_args={
            "connect_timeout": max(int(timeout), 1),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        },
    )


engine = build_engine(config_settings.DATABASE_URL)

# Each request gets its own session (a unit of work)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    """Creates any missing tables."""
    # Imported here so every ORM model is registered on the metadata
    from app.models.orm import assignment, experiment, flag, user  # noqa: F401
    from app.models.orm.base import Base

    Base.metadata.create_all(bind=bind)


def get_db():
    """
    Dependency that yields a database session for a single request,
    and ensures the session is closed afterward.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
