from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import check_database_ready, db_manager
from app.db.session import get_db

router = APIRouter(prefix="/api", tags=["infra"])


@router.get("/health/db")
async def database_health(session: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Connectivity, migration and schema checks."""
    return await db_manager.check_database_health(session)


@router.get("/health/ready")
async def database_ready(session: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Readiness: 503 while the database is unhealthy. Pending migrations alone do not block."""
    if not await check_database_ready(session):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Database is not ready", "type": "not_ready"}
        )
    return {"ready": True}


@router.get("/health/migrations")
async def migration_status(session: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Current and pending Alembic revisions."""
    return await db_manager.check_migration_status(session)
