"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""

import pytest
from datetime import datetime
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otohub_billing.main import app
from otohub_billing.api.dependencies import get_proof_storage
from otohub_billing.core.config import BillingPolicy
from otohub_billing.db.database import (
    build_engine,
    build_session_factory,
    get_db,
    get_session_factory,
    init_db,
)
from otohub_billing.db.models.tenant import Tenant
from otohub_billing.services.plan_catalog import PlanCatalog
from otohub_billing.services.proof_storage import LocalProofStorage
from otohub_billing.services.subscription_service import SubscriptionService

# Fixed clock for deterministic lifecycle assertions
NOW = datetime(2026, 3, 1, 9, 0, 0)

SUPERADMIN_HEADERS = {"X-User-ID": "admin-1", "X-User-Role": "SUPERADMIN"}


def tenant_headers(tenant_id: str, role: str = "OWNER", user_id: str = "owner-1") -> dict:
    return {"X-User-ID": user_id, "X-User-Role": role, "X-Tenant-ID": tenant_id}


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test"""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    await init_db(bind=test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def session_factory(engine) -> async_sessionmaker:
    factory = build_session_factory(engine)
    async with factory() as session:
        await PlanCatalog(session).seed_default_plans()
    return factory


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def policy() -> BillingPolicy:
    return BillingPolicy()


@pytest.fixture
async def test_tenant(db_session: AsyncSession, policy: BillingPolicy) -> Tenant:
    """Tenant in TRIAL created at NOW"""
    return await SubscriptionService(db_session, policy).create_tenant(
        "Dealer Jaya Motor", actor_id="admin-1", now=NOW
    )


@pytest.fixture
async def client(session_factory, tmp_path) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test database"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_proof_storage] = lambda: LocalProofStorage(
        upload_dir=str(tmp_path / "proofs"),
        base_url="/uploads/payment-proofs",
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
