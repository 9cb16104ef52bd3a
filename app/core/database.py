"""
Database management utilities for migrations, schema versioning and health checks.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import get_settings
from app.db.base import Base
from app.db import models  # noqa: F401

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Database management utility for migrations and operations.
    Handles schema versioning, migration execution, and database health checks.
    """

    def __init__(self, config_path: str = "alembic.ini"):
        self.settings = get_settings()
        self.alembic_cfg = Config(config_path)
        self.alembic_cfg.set_main_option("sqlalchemy.url", str(self.settings.DB_URL))

    async def get_current_revision(self, session: AsyncSession) -> Optional[str]:
        """Get the current database revision."""
        try:
            tables = await self._table_names(session)
            if "alembic_version" not in tables:
                return None
            result = await session.execute(text("SELECT version_num FROM alembic_version"))
            row = result.fetchone()
            return row[0] if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error getting current revision: {e}")
            return None

    def get_available_revisions(self) -> List[str]:
        """Get list of available migration revisions, oldest first."""
        try:
            script_dir = ScriptDirectory.from_config(self.alembic_cfg)
            revisions = [revision.revision for revision in script_dir.walk_revisions()]
            return list(reversed(revisions))
        except Exception as e:
            logger.error(f"Error getting available revisions: {e}")
            return []

    async def check_migration_status(self, session: AsyncSession) -> Dict[str, Any]:
        """Check the current migration status."""
        current_revision = await self.get_current_revision(session)
        available_revisions = self.get_available_revisions()
        latest = available_revisions[-1] if available_revisions else None

        if not current_revision:
            status = "not_initialized"
            pending_migrations = available_revisions
        elif current_revision == latest:
            status = "up_to_date"
            pending_migrations = []
        else:
            status = "pending_migrations"
            try:
                current_index = available_revisions.index(current_revision)
                pending_migrations = available_revisions[current_index + 1:]
            except ValueError:
                pending_migrations = available_revisions

        return {
            "status": status,
            "current_revision": current_revision,
            "latest_revision": latest,
            "pending_migrations": pending_migrations,
            "total_revisions": len(available_revisions),
        }

    async def run_migrations_async(self, target_revision: Optional[str] = None) -> bool:
        """Run Alembic migrations from an async context without event-loop conflicts."""
        try:
            rev = target_revision or "heads"
            await asyncio.to_thread(command.upgrade, self.alembic_cfg, rev)
            logger.info(f"Successfully ran migrations to {target_revision or 'head'}")
            return True
        except Exception as e:
            logger.error(f"Error running migrations: {e}")
            return False

    async def check_database_health(self, session: AsyncSession) -> Dict[str, Any]:
        """Connectivity, migration and schema checks against the given session's database."""
        health_status: Dict[str, Any] = {
            "status": "healthy",
            "checks": {},
            "timestamp": utcnow().isoformat(),
        }

        try:
            start_time = utcnow()
            await session.execute(text("SELECT 1"))
            health_status["checks"]["connectivity"] = {
                "status": "pass",
                "response_time_ms": int((utcnow() - start_time).total_seconds() * 1000),
            }

            migration_status = await self.check_migration_status(session)
            health_status["checks"]["migrations"] = {
                "status": "pass" if migration_status["status"] == "up_to_date" else "warn",
                "current_revision": migration_status["current_revision"],
                "pending_migrations": len(migration_status["pending_migrations"]),
            }

            tables = await self._table_names(session)
            missing_tables = sorted(set(Base.metadata.tables) - set(tables))
            health_status["checks"]["schema"] = {
                "status": "pass" if not missing_tables else "fail",
                "total_tables": len(tables),
                "missing_tables": missing_tables,
            }

            checks = health_status["checks"].values()
            if any(check["status"] == "fail" for check in checks):
                health_status["status"] = "unhealthy"
            elif any(check["status"] == "warn" for check in checks):
                health_status["status"] = "degraded"

        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            health_status["status"] = "unhealthy"
            health_status["error"] = str(e)

        return health_status

    @staticmethod
    async def _table_names(session: AsyncSession) -> List[str]:
        connection = await session.connection()
        return await connection.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())


# Global database manager instance
db_manager = DatabaseManager()


async def initialize_database():
    """Bring the schema to the latest revision."""
    logger.info("Running database migrations...")
    success = await db_manager.run_migrations_async()

    if success:
        logger.info("Database migrations completed successfully")
    else:
        logger.error("Database migrations failed")
        raise RuntimeError("Failed to run database migrations")


async def check_database_ready(session: AsyncSession) -> bool:
    """Check if database is ready for use."""
    health = await db_manager.check_database_health(session)
    return health["status"] in ["healthy", "degraded"]
