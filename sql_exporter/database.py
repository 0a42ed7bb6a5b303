"""Database engine construction and liveness probing."""
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from sql_exporter.config import DatabaseConfig
from sql_exporter.errors import ConnectionOpenFailure

logger = logging.getLogger(__name__)


def create_database_engine(config: DatabaseConfig) -> Engine:
    """
    Create a SQLAlchemy engine with connection pooling.

    The pool is shared by every metric. A hung query keeps its connection
    checked out; once ``pool_size + max_overflow`` connections are busy,
    other polls wait ``pool_timeout`` seconds and then fail.

    Raises:
        ConnectionOpenFailure: the URL is invalid or the driver is missing.
    """
    logger.info(f"Creating database engine for: {config.url.split('@')[-1]}")

    kwargs = dict(pool_pre_ping=True, pool_recycle=config.pool_recycle, echo=config.echo)
    if not config.url.startswith("sqlite"):
        kwargs.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
        )

    try:
        engine = create_engine(config.url, **kwargs)
    except (ArgumentError, ImportError, SQLAlchemyError) as e:
        raise ConnectionOpenFailure(f"Error opening database: {e}") from e

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def ping(engine: Engine) -> None:
    """Run a trivial query; raises ``SQLAlchemyError`` if the database is unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def open_database(config: DatabaseConfig) -> Engine:
    """Create the engine and verify the database answers at startup."""
    engine = create_database_engine(config)
    try:
        ping(engine)
    except SQLAlchemyError as e:
        engine.dispose()
        raise ConnectionOpenFailure(f"Database unreachable: {e}") from e
    return engine
