from typing import AsyncGenerator

import pytest
from fastapi import Depends, FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from portfolio_tracker.api.routes import health, portfolio
from portfolio_tracker.core.session import SessionContext
from portfolio_tracker.infrastructure.db import models  # noqa: F401
from portfolio_tracker.infrastructure.db.database import Base
from portfolio_tracker.infrastructure.market_data.manual_price_store import PriceSnapshotRegistry
from portfolio_tracker.infrastructure.persistence import build_persistence


@pytest.fixture()
async def db_engine(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture()
def local_dir(tmp_path):
    path = tmp_path / "local"
    path.mkdir()
    return path


@pytest.fixture()
async def app(db_session, local_dir) -> FastAPI:
    app = FastAPI()
    app.include_router(health.router, tags=["Health"])
    app.include_router(portfolio.router, prefix="/api/v1/portfolio", tags=["Portfolio"])

    async def override_get_persistence(
        session_ctx: SessionContext = Depends(portfolio.get_session_context),
    ):
        if session_ctx.local_mode:
            yield build_persistence(session_ctx, local_dir=str(local_dir))
        else:
            yield build_persistence(session_ctx, db_session=db_session)

    app.dependency_overrides[portfolio.get_persistence] = override_get_persistence
    app.state.price_oracle = None
    app.state.price_snapshots = PriceSnapshotRegistry()

    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
