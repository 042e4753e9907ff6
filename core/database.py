"""
Async SQLAlchemy engine creation for Postgres sources and sinks
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
import logging

logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """
    Map plain Postgres connection strings onto the asyncpg driver.

    ``postgres://`` and ``postgresql://`` both become
    ``postgresql+asyncpg://``; URLs that already name a driver are kept.
    """
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def build_engine(database_url: str, application_name: str = "dx-importer") -> AsyncEngine:
    """Create an async engine for one job run"""
    url = normalize_database_url(database_url)
    connect_args = {}
    if url.startswith("postgresql+asyncpg://"):
        connect_args["server_settings"] = {"application_name": application_name}

    return create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,  # Short-lived batch jobs, no pooling
        future=True,
        connect_args=connect_args,
    )
