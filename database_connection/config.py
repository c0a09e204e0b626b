# database_connection/config.py
"""
Database configuration and connection management for the HTS catalog.
Handles environment variables and SQLAlchemy async engine setup.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from database_connection.models import Base

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


class DatabaseConfig:
    """
    Configuration class for database connection settings.
    Supports both direct connection strings and component-based configuration.
    """

    def __init__(self, database_url: Optional[str] = None):
        # Primary: explicit URL or DATABASE_URL
        self.database_url = database_url or os.getenv("DATABASE_URL")

        # Fallback: Construct from individual components
        if not self.database_url and os.getenv("DB_HOST"):
            self.db_host = os.getenv("DB_HOST", "")
            self.db_port = os.getenv("DB_PORT", "5432")
            self.db_name = os.getenv("DB_NAME", "")
            self.db_user = os.getenv("DB_USER", "")
            self.db_password = os.getenv("DB_PASSWORD", "")

            # Construct PostgreSQL connection URL
            self.database_url = f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

        # Echo SQL queries for debugging (set to False in production)
        self.echo_sql = os.getenv("DB_ECHO", "false").lower() == "true"

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.database_url)

    def get_engine(self) -> AsyncEngine:
        if not self.database_url:
            raise RuntimeError("No DATABASE_URL (or DB_HOST) configured")
        if self._engine is None:
            self._engine = create_async_engine(self.database_url, echo=self.echo_sql, future=True)
        return self._engine

    def get_session_factory(self) -> async_sessionmaker:
        # Configure session factory
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(bind=self.get_engine(), expire_on_commit=False)
        return self._session_factory


async def init_db(engine: AsyncEngine, drop: bool = False):
    """Initialize database schema from models."""
    async with engine.begin() as conn:
        if drop:
            # Drops the hts_codes table
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")
