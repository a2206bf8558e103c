from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from portfolio_tracker.config import settings
from portfolio_tracker.infrastructure.db import database

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Service health with database and price oracle status"""
    db_status = "disabled" if settings.LOCAL_MODE else "not_initialized"
    db_error = None
    if database.engine is not None:
        try:
            async with database.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "connected"
        except SQLAlchemyError as exc:
            db_status = "error"
            db_error = str(exc)

    oracle = getattr(request.app.state, "price_oracle", None)
    return {
        "status": "healthy",
        "service": "Portfolio Tracker",
        "version": "1.0.0",
        "local_mode": settings.LOCAL_MODE,
        "services": {
            "api": "running",
            "database": db_status,
            "price_oracle": type(oracle).__name__ if oracle else "disabled",
        },
        "database_error": db_error,
    }
