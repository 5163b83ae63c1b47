import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import Settings
from app.models.base import Base, utcnow
# Import all models so they register with Base.metadata for create_all
import app.models  # noqa: F401
from app.models.verification_case import CaseStatus, DocumentType, VerificationCase
from app.models.webhook import ClientWebhookConfig


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        redis_url="",
        jwt_secret="test-secret",
        webhook_retry_delays=[0.0, 0.0, 0.0],
        bulk_retry_base_delay_ms=0,
        bulk_max_concurrency=1,
    )


# File-backed SQLite so several sessions (bulk items, webhook tasks) can share it
@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_case(db_session):
    """Persist and commit a case; returns the ORM object."""

    async def _make(
        *,
        case_id: str | None = None,
        client_id: str = "client_a",
        status: CaseStatus = CaseStatus.PENDING_REVIEW,
        document_type: DocumentType = DocumentType.OMANG,
        **fields,
    ) -> VerificationCase:
        from app.cases.service import new_case_id

        now = utcnow()
        case = VerificationCase(
            id=case_id or new_case_id(),
            client_id=client_id,
            status=status,
            document_type=document_type,
            created_at=now,
            updated_at=now,
            expires_at=now,
            **fields,
        )
        db_session.add(case)
        await db_session.commit()
        return case

    return _make


@pytest.fixture
def make_webhook_config(db_session):
    async def _make(
        client_id: str = "client_a",
        *,
        url: str | None = "https://client.example.com/hooks",
        secret: str | None = "whsec_test",
        enabled: bool = True,
        events: list[str] | None = None,
    ) -> ClientWebhookConfig:
        config = ClientWebhookConfig(
            client_id=client_id,
            webhook_url=url,
            webhook_secret=secret,
            webhook_enabled=enabled,
            webhook_events=events if events is not None else [
                "verification.approved",
                "verification.rejected",
                "verification.resubmission_required",
                "verification.expired",
            ],
        )
        db_session.add(config)
        await db_session.commit()
        return config

    return _make


@pytest.fixture
async def client(db_session, session_factory):
    from app.auth.policy import PolicyCache
    from app.config import settings
    from app.dependencies import (
        get_db,
        get_notification_queue,
        get_session_factory,
        get_webhook_dispatcher,
    )
    from app.main import app

    original_redis_url = settings.redis_url
    settings.redis_url = ""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_webhook_dispatcher] = lambda: None
    app.dependency_overrides[get_notification_queue] = lambda: None
    app.state.policy_cache = PolicyCache()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    settings.redis_url = original_redis_url
