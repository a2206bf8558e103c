"""
FastAPI Main Application
Portfolio valuation and transaction reconciliation service
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_tracker.api.routes import health, portfolio
from portfolio_tracker.config import settings
from portfolio_tracker.core.logging import setup_logging
from portfolio_tracker.infrastructure.db.database import close_db, init_db
from portfolio_tracker.infrastructure.market_data.manual_price_store import PriceSnapshotRegistry
from portfolio_tracker.infrastructure.market_data.provider_factory import get_price_oracle

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Database, price oracle and per-user price snapshots
    """
    logger.info("=" * 60)
    logger.info("Starting Portfolio Tracker")
    logger.info("=" * 60)

    if not settings.LOCAL_MODE:
        await init_db()
        logger.info("Database initialized")
    else:
        logger.info(f"Local mode: storing documents in {settings.LOCAL_STORAGE_DIR}")

    app.state.price_oracle = get_price_oracle()
    app.state.price_snapshots = PriceSnapshotRegistry(settings.PRICE_SNAPSHOT_MAX_USERS)
    logger.info(f"Price provider: {settings.MARKET_DATA_PROVIDER}")

    logger.info(f"API Server: http://{settings.API_HOST}:{settings.API_PORT}")
    logger.info(f"API Docs: http://{settings.API_HOST}:{settings.API_PORT}/docs")

    yield

    logger.info("Shutting down Portfolio Tracker...")
    app.state.price_snapshots.clear()
    await close_db()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Portfolio Tracker",
        description="Holdings, transactions and portfolio valuation",
        version="1.0.0",
        lifespan=lifespan,
    )
    # Available before lifespan runs (e.g. under test transports)
    app.state.price_oracle = None
    app.state.price_snapshots = PriceSnapshotRegistry(settings.PRICE_SNAPSHOT_MAX_USERS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(portfolio.router, prefix="/api/v1/portfolio", tags=["Portfolio"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("portfolio_tracker.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
