"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Set test environment before any app code runs
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./effectiveness_test.db"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["REFRESH_LOCK_BACKEND"] = "local"
os.environ["CLASSIFIER_PROVIDER"] = "mock"
os.environ["SCREENSHOT_DIR"] = tempfile.mkdtemp(prefix="effectiveness-screenshots-")
os.environ.pop("SENTRY_DSN", None)

from api.config import get_settings  # noqa: E402

get_settings.cache_clear()  # Use test env, not stale or .env values

SAMPLE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <title>Acme Payroll - Payroll software for small businesses</title>
  <meta name="description" content="Run payroll in minutes. Acme handles taxes, filings and direct deposit for small businesses across the country.">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <link rel="canonical" href="https://acme.example/">
</head>
<body>
  <header class="site-header">
    <nav><a href="/">Home</a><a href="/pricing">Pricing</a><a href="/about">About</a></nav>
  </header>
  <main>
    <section class="hero">
      <h1>Payroll for small businesses, done in minutes</h1>
      <p>Acme files your payroll taxes automatically so you can get back to work.</p>
      <a href="/signup" class="btn btn-primary">Start free trial</a>
    </section>
    <section class="testimonials">
      <blockquote>"Acme saved us six hours every month." - Jane Doe, Owner</blockquote>
    </section>
    <img src="/team.png" alt="The Acme team">
  </main>
  <footer>&copy; 2026 Acme Inc.</footer>
</body>
</html>
"""


@pytest.fixture
def sample_html() -> str:
    return SAMPLE_HTML


@pytest.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed sqlite database with every table created."""
    import api.models  # noqa: F401  # register models with Base.metadata
    from api.database import Base, build_engine

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'effectiveness.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    from api.database import build_session_maker

    return build_session_maker(db_engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_provider():
    from worker.classification.providers import MockProvider

    return MockProvider()


@pytest.fixture
def classification_engine(mock_provider):
    from worker.classification.engine import ClassificationEngine

    return ClassificationEngine(mock_provider, retry_delay_seconds=0)


@pytest.fixture
def job_queue() -> MagicMock:
    """Stand-in for the rq-backed JobQueue."""
    queue = MagicMock()
    queue.enqueue.return_value = MagicMock(id="job-123")
    return queue


@pytest.fixture
def effectiveness_service(job_queue, classification_engine):
    from api.locks import LocalRefreshLock
    from api.services.effectiveness_service import EffectivenessService
    from api.services.job_service import JobService
    from worker.insights import InsightsGenerator

    return EffectivenessService(
        job_service=JobService(queue=job_queue),
        refresh_lock=LocalRefreshLock(timeout_seconds=5),
        insights=InsightsGenerator(classification_engine),
        settings=get_settings(),
    )


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    effectiveness_service,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client wired to the test database."""
    from api.database import get_db
    from api.main import app
    from api.services.effectiveness_service import get_effectiveness_service

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_effectiveness_service] = lambda: effectiveness_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def sample_client(session_factory: async_sessionmaker[AsyncSession]):
    from api.models import Client

    async with session_factory() as db:
        client = Client(
            name="Acme Payroll",
            website_url="https://acme.example",
            industry_vertical="saas",
            business_size="small",
        )
        db.add(client)
        await db.commit()
        return client


@pytest.fixture
async def sample_competitors(session_factory: async_sessionmaker[AsyncSession], sample_client):
    from api.models import Competitor

    async with session_factory() as db:
        competitors = [
            Competitor(client_id=sample_client.id, domain="rival-one.example", label="Rival One"),
            Competitor(client_id=sample_client.id, domain="rival-two.example"),
        ]
        for competitor in competitors:
            db.add(competitor)
            # Distinct created_at keeps competitor order stable
            await db.flush()
        await db.commit()
        return competitors


@pytest.fixture
def make_run(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Factory inserting a run (and optional criterion scores) directly."""
    from api.models import CriterionScore, EffectivenessRun

    async def _make_run(
        client_id,
        status: str = "completed",
        scores: dict[str, float] | None = None,
        **fields: Any,
    ) -> EffectivenessRun:
        if status == "completed":
            fields.setdefault("completed_at", datetime.now(UTC))
        async with session_factory() as db:
            run = EffectivenessRun(client_id=client_id, status=status, **fields)
            db.add(run)
            await db.flush()
            for criterion, score in (scores or {}).items():
                db.add(
                    CriterionScore(
                        run_id=run.id,
                        criterion=criterion,
                        score=score,
                        evidence={
                            "description": f"{criterion} evidence",
                            "details": {},
                            "reasoning": f"{criterion} reasoning",
                        },
                        passes={"passed": [f"{criterion}_ok"], "failed": []},
                    )
                )
            await db.commit()
            return run

    return _make_run


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build bearer headers for a principal."""
    from api.auth import create_access_token

    def _headers(role: str = "Client", client_id=None, user_id: str = "user-1") -> dict[str, str]:
        token = create_access_token(user_id, role=role, client_id=client_id)  # type: ignore[arg-type]
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_headers(auth_headers) -> dict[str, str]:
    return auth_headers(role="Admin", user_id="admin-1")


@pytest.fixture
def client_headers(auth_headers, sample_client) -> dict[str, str]:
    """Headers for a client user who owns ``sample_client``."""
    return auth_headers(role="Client", client_id=sample_client.id)
