from typing import Generator, Optional
import logging

from dotenv import load_dotenv
from sqlmodel import SQLModel, create_engine, Session

from core.config import settings

# ============================================================
# ✅ Load environment variables
# ============================================================
load_dotenv()
logger = logging.getLogger(__name__)


def _build_engine(url: str):
    # SQLite needs same-thread checks off for FastAPI's threadpool
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args)


# ============================================================
# ✅ Engines: canonical store + optional legacy (public schema)
# ============================================================
engine = _build_engine(settings.DATABASE_URL)
logger.info("✅ Using database: %s", settings.DATABASE_URL.split("@")[-1])

legacy_engine = _build_engine(settings.LEGACY_DATABASE_URL) if settings.LEGACY_DATABASE_URL else None
if legacy_engine is not None:
    logger.info("✅ Legacy resident store configured")


# ============================================================
# ✅ Create tables (called at startup)
# ============================================================
def create_db_and_tables() -> None:
    """Create all tables declared on the SQLModel metadata."""
    try:
        SQLModel.metadata.create_all(engine)
        logger.info("✅ All database tables created successfully.")
    except Exception as e:
        logger.error("❌ Failed to create tables: %s", e)
        raise


# ============================================================
# ✅ Dependencies: FastAPI session generators
# ============================================================
def get_session() -> Generator[Session, None, None]:
    """
    Provides a SQLModel Session to FastAPI dependencies.
    Closes automatically after request completes.
    """
    with Session(engine) as session:
        yield session


def get_legacy_session() -> Generator[Optional[Session], None, None]:
    """Yields a session on the legacy store, or None when it is not configured."""
    if legacy_engine is None:
        yield None
        return
    with Session(legacy_engine) as session:
        yield session
