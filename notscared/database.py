import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi import Request
from loguru import logger
from notscared.config import Settings

# Base class for all models
Base = declarative_base()


class Database:
    """
    Storage context owned by the process entry point.

    Holds the engine and session factory. Created once by create_app()
    or the CLI and passed explicitly to whatever needs a session;
    nothing in the package reaches for a global handle.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine = _build_engine(database_url, echo)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_url, echo=settings.debug and settings.log_level == "DEBUG")

    def init_db(self):
        """
        Initialize database schema.
        Creates all tables defined in models.
        """
        # Register models on Base.metadata before create_all
        import notscared.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema ready ({})", self.engine.url.render_as_string(hide_password=True))

    def session(self):
        return self.SessionLocal()

    def dispose(self):
        self.engine.dispose()


def _build_engine(database_url: str, echo: bool) -> Engine:
    # check_same_thread=False needed for SQLite with FastAPI
    # In-memory SQLite must share one connection or every session sees an empty database
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            _ensure_sqlite_dir(database_url)
        engine = create_engine(database_url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def _ensure_sqlite_dir(database_url: str):
    path = make_url(database_url).database
    if path:
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless this is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db(request: Request):
    """
    Dependency that provides database session to route handlers.
    Ensures session is properly closed after request.
    """
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
