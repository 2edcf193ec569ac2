import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from sheetsync.core.config import settings

logger = logging.getLogger(__name__)

_engine = None


def _report_connection_failure(exc: Exception) -> None:
    """Log high-signal diagnostics when the application cannot reach the database."""
    logger.warning("Could not connect to database: %s", exc)
    logger.warning("The application will start but database operations will fail until the connection succeeds.")

    try:
        url = make_url(settings.database_url)
    except Exception as parse_error:  # pragma: no cover
        logger.warning("Unable to parse DATABASE_URL (%s); skipping detailed diagnostics.", parse_error)
        return

    masked_url = url._replace(password="***" if url.password else None)
    logger.warning(
        "Database settings: dialect=%s driver=%s host=%s port=%s database=%s",
        masked_url.get_backend_name(),
        masked_url.get_driver_name() or "default",
        masked_url.host or "localhost",
        masked_url.port or "(default)",
        masked_url.database,
    )


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # Batches run on background threads.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def get_engine():
    global _engine
    if _engine is None:
        try:
            _engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
            # Test connection eagerly so failures surface immediately.
            with _engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            _report_connection_failure(e)
            # Create the engine anyway so callers can proceed (may still fail later).
            _engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
    return _engine


# Don't create engine at import time
SessionLocal = None

Base = declarative_base()


def get_session_local():
    global SessionLocal
    if SessionLocal is None:
        engine = get_engine()
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    return SessionLocal


def get_db():
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine=None) -> None:
    """Create every table declared on ``Base`` if it does not exist yet."""
    # Models register themselves on Base at import time.
    from sheetsync.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
