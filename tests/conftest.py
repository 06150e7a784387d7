"""Shared test fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI

from marquee.api.routes import admin, health


def make_nested_ctx() -> MagicMock:
    """Async context manager that mimics SQLAlchemy's begin_nested() / SAVEPOINT."""
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=ctx)
    ctx.__aexit__ = AsyncMock(return_value=False)  # never suppress exceptions
    return ctx


@pytest.fixture
def db() -> AsyncMock:
    """Mock AsyncSession with savepoint support."""
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.scalar = AsyncMock(return_value=None)
    session.begin_nested = MagicMock(side_effect=lambda: make_nested_ctx())
    return session


@pytest.fixture
def test_app() -> FastAPI:
    """Minimal FastAPI app without the APScheduler lifespan, for API tests."""
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(admin.router, prefix="/api")
    return app
