"""
Database Configuration Module
Direct PostgreSQL connection to the Supabase database, used when the REST
SQL helpers are not installed.
"""

import logging
from typing import Optional
from urllib.parse import quote_plus
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from app_config import AppConfig

logger = logging.getLogger(__name__)


class DatabaseConnectionError(Exception):
    """Raised when the direct PostgreSQL engine cannot be created."""


class DatabaseConfig:
    """Database configuration manager for the direct PostgreSQL connection."""

    def __init__(self, config: AppConfig):
        self.engine = None
        self.host = config.db_host
        self._setup_postgresql(config)

    def _setup_postgresql(self, config: AppConfig):
        """Setup PostgreSQL connection for Supabase."""
        connection_string = (
            f"postgresql://{quote_plus(config.db_user)}:{quote_plus(config.db_password or '')}"
            f"@{config.db_host}:{config.db_port}/{config.db_name}"
        )

        try:
            self.engine = create_engine(connection_string, echo=False, pool_pre_ping=True)
            logger.info(f"✅ Direct PostgreSQL engine ready for {config.db_host}")
        except Exception as e:
            logger.error(f"❌ Failed to create PostgreSQL engine: {e}")
            raise DatabaseConnectionError(f"Database connection failed: {e}") from e

    def test_connection(self) -> bool:
        """Run a trivial query to confirm the database is reachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("✅ Direct PostgreSQL connection OK")
            return True
        except SQLAlchemyError as e:
            logger.error(f"❌ Direct PostgreSQL connection failed: {e}")
            return False

    def execute_script(self, sql):
        """Execute a multi-statement DDL script inside one transaction."""
        with self.engine.begin() as conn:
            conn.exec_driver_sql(sql)


_db_config = None


def get_db_config(config: AppConfig) -> Optional[DatabaseConfig]:
    """Cached direct database configuration, or None when not configured."""
    global _db_config
    if not config.has_direct_db:
        return None
    if _db_config is None or _db_config.host != config.db_host:
        _db_config = DatabaseConfig(config)
    return _db_config
