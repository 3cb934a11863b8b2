"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from fastapi.testclient import TestClient


@pytest.fixture
def api_redis():
    """Fake Redis; only touched from the TestClient's event loop."""
    return FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def api_client(store, api_redis):
    """FastAPI test client backed by the in-memory store and fake Redis.

    The test lifespan skips database and Redis initialization; both are
    supplied through dependency overrides instead. Redis calls made from a
    test must go through client.portal so they run on the client's loop.
    """
    from fastapi import HTTPException
    from fastapi.middleware.cors import CORSMiddleware

    from opsdesk.api.routes import api_router
    from opsdesk.core.config import get_settings
    from opsdesk.core.exceptions import OpsDeskError
    from opsdesk.db.redis import get_redis
    from opsdesk.main import generic_exception_handler, http_exception_handler, opsdesk_exception_handler
    from opsdesk.middleware.correlation import setup_correlation_middleware
    from opsdesk.services.timeline_store import get_timeline_store

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        app.state.shutting_down = False
        yield

    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="OpsDesk Timeline Service - Test Client",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_correlation_middleware(app)

    # Exception handlers (needed for debug_id testing)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(OpsDeskError)(opsdesk_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    app.dependency_overrides[get_timeline_store] = lambda: store
    app.dependency_overrides[get_redis] = lambda: api_redis

    with TestClient(app) as client:
        client.portal.call(api_redis.flushall)
        yield client
        client.portal.call(api_redis.flushall)

    app.dependency_overrides.clear()
