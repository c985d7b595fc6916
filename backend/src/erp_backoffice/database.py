"""Database engine, session factories and tenant-scoped sessions.

Importing this module registers the tenant isolation listeners
(tenancy.isolation) on every SQLAlchemy Session.
"""

from contextlib import contextmanager
from typing import Generator
from uuid import UUID

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .tenancy import isolation  # noqa: F401  registers session listeners
from .tenancy.isolation import set_tenant_context

DATABASE_URL = settings.DATABASE_URL

# Pool settings only apply to PostgreSQL (not SQLite)
_engine_kwargs = {
    "pool_pre_ping": True,
    "echo": False,
}

if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Automatically commits on success, rolls back on exception. The session
    has no tenant context; bind one with set_tenant_context() or use
    tenant_scoped_session() / system_session().
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    The company context dependency binds the tenant onto this session once
    the request's company has been resolved.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def tenant_scoped_session(tenant_id: UUID) -> Session:
    """Create a session whose ORM statements are filtered to one tenant.

    Intended for background jobs that process a single tenant's data.
    Caller owns the session and must close it.

    Example:
        session = tenant_scoped_session(tenant_uuid)
        try:
            warehouses = session.execute(select(Warehouse)).scalars().all()
            session.commit()
        finally:
            session.close()
    """
    return set_tenant_context(SessionLocal(), tenant_id)


def system_session() -> Session:
    """Create a session that may cross tenants (cleanup jobs, provisioning).

    Honoured only while TENANT_ALLOW_BYPASS is enabled; with bypass disabled
    the session behaves like an unscoped session under strict mode.
    """
    session = SessionLocal()
    session.info["bypass_tenant"] = True
    return session
