"""Pytest fixtures for the ERP back office.

Provides reusable fixtures for:
- An in-memory SQLite database shared by fixtures and the API client
- Tenants, companies and users with Tier 1 and Tier 2 access
- Access tokens and authenticated request headers

Fixture data is written through a system (bypass) session. Every API
request gets its own fresh session, so the tenant isolation hook runs
exactly as it does in production.

Usage:
    def test_list_companies(client, world, auth_headers):
        response = client.get("/api/v1/companies", headers=auth_headers(world.owner_a))
        assert response.status_code == 200
"""

import os
import sys
from pathlib import Path

# Set environment variables BEFORE any application imports
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-256-bits-minimum-length-required")
os.environ.setdefault("PASSWORD_PEPPER", "test-pepper-secret-key-32-chars-long")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("ENVIRONMENT", "test")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from typing import Callable, Dict, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from erp_backoffice.auth.password import hash_password
from erp_backoffice.config import get_settings
from erp_backoffice.database import get_db as database_get_db
from erp_backoffice.models import Base, Company, Tenant, User

from fixtures.factories import World, build_world, token_for

TEST_PASSWORD = "Str0ng!Passw0rd"

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session")
def password_hash() -> str:
    """Argon2id is deliberately slow; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Run without Redis: rate limiting and idempotency become pass-through."""
    monkeypatch.setattr("erp_backoffice.auth.rate_limit.get_redis_client", lambda: None)
    monkeypatch.setattr("erp_backoffice.idempotency.get_redis_client", lambda: None)


@pytest.fixture
def isolation_settings(monkeypatch):
    """Flip tenant isolation flags for one test.

    Example:
        def test_lenient(isolation_settings):
            isolation_settings(TENANT_STRICT_MODE=False)
    """
    def apply(**flags):
        settings = get_settings()
        for name, value in flags.items():
            monkeypatch.setattr(settings, name, value)
        return settings

    return apply


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """System session on a fresh schema. Bypasses tenant isolation."""
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    session.info["bypass_tenant"] = True

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def scoped_session(db_session: Session) -> Generator[Session, None, None]:
    """Plain session with no tenant context and no bypass."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """API client whose requests each get a fresh session on the test database."""
    from erp_backoffice.main import app

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[database_get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def world(db_session: Session, password_hash: str) -> World:
    """Two tenants, three companies and five users (see World)."""
    return build_world(db_session, password_hash)


@pytest.fixture
def auth_headers(world: World) -> Callable[..., Dict[str, str]]:
    """Build Authorization (and optional X-Company-ID) headers for a world user.

    The token's tenant is the user's home tenant unless ``tenant`` is given.
    """
    homes = {
        world.owner_a.id: (world.tenant_a, "OWNER"),
        world.admin_a.id: (world.tenant_a, "TENANT_ADMIN"),
        world.finance_a1.id: (world.tenant_a, "STAFF"),
        world.staff_a1.id: (world.tenant_a, "STAFF"),
        world.owner_b.id: (world.tenant_b, "OWNER"),
    }

    def build(user: User, company: Company = None, tenant: Tenant = None) -> Dict[str, str]:
        home_tenant, role = homes[user.id]
        headers = {"Authorization": f"Bearer {token_for(user, tenant or home_tenant, role)}"}
        if company is not None:
            headers["X-Company-ID"] = str(company.id)
        return headers

    return build
