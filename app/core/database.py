"""
Engine and session setup shared by the API, the workers and the scheduler.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from .config import settings

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options = {"connect_args": {"check_same_thread": False}}
    if url in IN_MEMORY_URLS:
        # One connection, otherwise every session sees an empty database
        options["poolclass"] = StaticPool
    return options


engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG, **_engine_options(settings.DATABASE_URL))

if settings.DATABASE_URL.startswith("sqlite") and settings.DATABASE_URL not in IN_MEMORY_URLS:
    @event.listens_for(engine, "connect")
    def _sqlite_wal(dbapi_connection, connection_record):
        # Scheduler and API write from different threads
        dbapi_connection.execute("PRAGMA journal_mode=WAL")

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)

Base = declarative_base()


def get_db():
    """FastAPI dependency: one session per request, always closed."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
