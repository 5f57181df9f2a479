"""
Database connection module using sync SQLAlchemy.
Services receive a Session and own their commit/rollback boundaries.
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, func, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from config.settings import settings
from database.models import Base, Station
import logging

logger = logging.getLogger(__name__)


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create a sync engine for the given URL.

    SQLite URLs skip pool sizing options which the SQLite pool does not accept.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        url,
        pool_size=5,              # Small pool for a single admin service
        max_overflow=10,          # Total connections: 15
        pool_pre_ping=True,       # Check connections before use
        pool_recycle=300,         # Recycle after 5 minutes
        echo=echo,
    )


engine = create_db_engine(settings.sync_database_url, echo=settings.SQL_ECHO)

SessionLocal = sessionmaker(
    bind=engine,
    class_=Session,
    expire_on_commit=False,
    autoflush=False,
)


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Get database session.

    Usage:
        with get_session() as session:
            result = session.execute(query)
    """
    session = SessionLocal()
    try:
        yield session
    except Exception as e:
        session.rollback()
        logger.error(f"Database session error: {e}")
        raise
    finally:
        session.close()


def init_db(bind: Engine = None) -> None:
    """Create all tables that do not exist yet."""
    bind = bind or engine
    Base.metadata.create_all(bind)
    logger.info(f"Database schema ready ({bind.url.render_as_string(hide_password=True)})")


def check_db_health(bind: Engine = None) -> tuple[bool, str]:
    """
    Check database connection health.

    Returns:
        tuple: (is_healthy: bool, message: str)
    """
    bind = bind or engine
    try:
        with bind.connect() as connection:
            connection.execute(text("SELECT 1"))

            table_names = set(inspect(connection).get_table_names())
            required = {table.name for table in Base.metadata.sorted_tables}
            missing = required - table_names
            if missing:
                return False, f"Missing tables: {', '.join(sorted(missing))}"

            count = connection.execute(select(func.count(Station.id))).scalar()
            return True, f"Connected - {count} stations, all tables present"

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False, f"Connection failed: {str(e)[:100]}"
