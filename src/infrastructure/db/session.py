# src/infrastructure/db/session.py

import logging
import time

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from src.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # Request handlers run in a threadpool.
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


engine: Engine = build_engine(get_settings().database_url)

# Services commit explicitly at the end of each use case.
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def wait_for_database(bind: Engine, settings: Settings) -> None:
    """
    Block until ``SELECT 1`` succeeds. The API container usually starts
    before Postgres accepts connections.
    """
    attempts = settings.db_connect_max_retries
    for attempt in range(1, attempts + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            if attempt == attempts:
                logger.error(
                    "Database not reachable after %s attempts. Check DATABASE_URL.",
                    attempts,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                attempts,
                settings.db_connect_retry_delay,
            )
            time.sleep(settings.db_connect_retry_delay)
        else:
            logger.info("Database is reachable.")
            return
