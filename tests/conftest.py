"""
Test configuration and fixtures
"""

import os
from datetime import date
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

# Import all models BEFORE creating fixtures (critical for create_all to work)
from adoption_insights.core.database import Base, build_session_factory
from adoption_insights.models.event import Event
from adoption_insights.models.failed_event import FailedEvent
from adoption_insights.core.dates import to_end_of_day_utc, to_start_of_day_utc
from adoption_insights.schemas.insights import Filters
from adoption_insights.services.batch_processor import BatchProcessorConfig, EventBatchProcessor
from adoption_insights.services.dialects import SqliteDialect
from adoption_insights.services.event_database import EventDatabase
from adoption_insights.services.event_model import TrackedEvent
from adoption_insights.services.techdocs_service import TechdocsMetadataClient


@pytest_asyncio.fixture(scope="function")
async def test_db() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite database with both tables"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_db):
    return build_session_factory(test_db)


@pytest.fixture
def event_db(session_factory) -> EventDatabase:
    return EventDatabase(session_factory, SqliteDialect())


@pytest.fixture
def mock_database():
    """Stand-in for EventDatabase on the write path"""
    mock = AsyncMock()
    mock.insert_events.return_value = None
    mock.insert_failed_event.return_value = None
    return mock


@pytest.fixture
def processor(mock_database) -> EventBatchProcessor:
    return EventBatchProcessor(mock_database, BatchProcessorConfig(batch_size=5, batch_interval=50, max_retries=3))


@pytest.fixture
def raw_event():
    """Factory for raw analytics events as clients post them"""

    def _make(
        action="navigate",
        plugin_id="catalog",
        user_name="user:default/guest",
        user_id="edf9b585cd547bd4d13e21375202ef43",
        timestamp="2025-03-02T16:25:32.819Z",
        subject="/catalog",
        attributes=None,
        **extra
    ):
        context = {
            "routeRef": "unknown",
            "pluginId": plugin_id,
            "extension": "App",
            "timestamp": timestamp,
        }
        if user_name is not None:
            context["userName"] = user_name
        if user_id is not None:
            context["userId"] = user_id
        event = {
            "action": action,
            "subject": subject,
            "attributes": attributes or {},
            "context": context,
        }
        event.update(extra)
        return event

    return _make


@pytest.fixture
def tracked_event(raw_event):
    """Factory for normalized events ready for the batch queue"""

    def _make(json_capable=False, **kwargs):
        return TrackedEvent.from_analytics_event(raw_event(**kwargs), json_capable)

    return _make


@pytest.fixture
def make_filters():
    """Build day-bounded filters the way the insights endpoint does"""

    def _make(start: date, end: date, timezone: str = "UTC", **kwargs) -> Filters:
        return Filters(
            start_date=to_start_of_day_utc(start, timezone),
            end_date=to_end_of_day_utc(end, timezone),
            timezone=timezone,
            **kwargs
        )

    return _make


@pytest.fixture
def techdocs_requests():
    """Requests received by the stubbed techdocs backend"""
    return []


@pytest.fixture
def techdocs_client(techdocs_requests) -> TechdocsMetadataClient:
    """
    Techdocs client backed by httpx.MockTransport. The entity name picks the
    response: "broken" fails with 500, "untitled" has no site_name.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        techdocs_requests.append(request)
        name = request.url.path.rsplit("/", 1)[-1]
        if name == "broken":
            return httpx.Response(500, json={"error": "boom"})
        if name == "untitled":
            return httpx.Response(200, json={})
        return httpx.Response(200, json={"site_name": f"{name.title()} Docs"})

    return TechdocsMetadataClient("http://techdocs.test/api/techdocs", transport=httpx.MockTransport(handler))


@pytest_asyncio.fixture
async def client(session_factory, processor, techdocs_client) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to the in-memory database and an unstarted processor"""
    from adoption_insights.main import app
    from adoption_insights.api.v1.endpoints.events import (
        get_event_database,
        get_ingestion_service,
        get_techdocs_client,
    )
    from adoption_insights.services.ingestion_service import IngestionService

    # Health checks read app.state directly
    app.state.session_factory = session_factory
    app.state.dialect = SqliteDialect()
    app.state.processor = processor

    app.dependency_overrides[get_event_database] = lambda: EventDatabase(session_factory, SqliteDialect())
    app.dependency_overrides[get_ingestion_service] = lambda: IngestionService(processor, json_capable=False)
    app.dependency_overrides[get_techdocs_client] = lambda: techdocs_client

    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
        del app.state.session_factory
        del app.state.dialect
        del app.state.processor
