"""Liveness and basic service metrics."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ites.database import get_db
from ites.storage.repositories import count_by_status

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(db: Annotated[AsyncSession, Depends(get_db)]):
    """Liveness plus a database round trip."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "error"})
    return {"status": "ok", "database": "ok"}


@router.get("/metrics")
async def metrics(db: Annotated[AsyncSession, Depends(get_db)]):
    """Live ITE counts by workflow status."""
    return {"service": "ites", "version": "0.1.0", "ites_by_status": await count_by_status(db)}
