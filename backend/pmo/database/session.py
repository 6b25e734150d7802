"""
Database session management with connection pooling.

Two kinds of session share one engine and one pool:

- Tenant-scoped sessions (get_scoped_session_factory): marked with
  session.info["tenant_scoped"]; every ORM statement and flush touching a
  TenantScopedMixin model is constrained to the active tenant context.
  This is the only kind reachable from request handlers.
- Raw sessions (get_raw_session): no tenant interception. Trusted code
  only: provisioning, maintenance scripts, audit writes, test fixtures and
  the audited platform-admin listing.

Usage:
    from pmo.database.session import get_scoped_db_session

    @router.get("/items")
    async def get_items(db: Session = Depends(get_scoped_db_session)):
        ...
"""

import os
import logging
from contextlib import contextmanager
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from fastapi import HTTPException, status

from pmo.database.tenant_scoping import SCOPED_SESSION_INFO_KEY, install_tenant_scoping

logger = logging.getLogger(__name__)

# Module-level engine singleton
_engine: Optional[Engine] = None
_RawSessionLocal: Optional[sessionmaker] = None
_ScopedSessionLocal: Optional[sessionmaker] = None


def _get_database_url() -> str:
    """
    Get and normalize the database URL from environment.

    Handles the postgres:// URL format by converting to postgresql://.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


def get_engine() -> Engine:
    """
    Get or create the database engine singleton.

    Uses connection pooling with sensible defaults for production:
    - pool_size: 5 connections
    - max_overflow: 10 additional connections under load
    - pool_pre_ping: Verify connections before use
    """
    global _engine
    if _engine is None:
        try:
            database_url = _get_database_url()
            if database_url.startswith("sqlite"):
                _engine = create_engine(
                    database_url,
                    connect_args={"check_same_thread": False},
                )
            else:
                _engine = create_engine(
                    database_url,
                    poolclass=QueuePool,
                    pool_size=5,
                    max_overflow=10,
                    pool_pre_ping=True,
                    pool_recycle=1800,
                )
            logger.info("Database engine created with connection pooling")
        except ValueError as e:
            logger.error("Failed to create database engine", extra={"error": str(e)})
            raise
    return _engine


def configure_engine(engine: Engine) -> None:
    """
    Bind the module to an existing engine.

    Used by tests and maintenance scripts. Resets both session factories.
    """
    global _engine, _RawSessionLocal, _ScopedSessionLocal
    _engine = engine
    _RawSessionLocal = None
    _ScopedSessionLocal = None


def get_session_factory() -> sessionmaker:
    """Get or create the raw (unscoped) session factory singleton."""
    global _RawSessionLocal
    if _RawSessionLocal is None:
        _RawSessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _RawSessionLocal


def get_scoped_session_factory() -> sessionmaker:
    """Get or create the tenant-scoped session factory singleton."""
    global _ScopedSessionLocal
    if _ScopedSessionLocal is None:
        install_tenant_scoping()
        _ScopedSessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
            info={SCOPED_SESSION_INFO_KEY: True},
        )
    return _ScopedSessionLocal


def create_scoped_session() -> Session:
    """Open a new tenant-scoped session. Caller closes it."""
    return get_scoped_session_factory()()


async def get_scoped_db_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency for tenant-scoped database sessions.

    Creates a new session for each request and ensures proper cleanup.
    Raises HTTP 503 if database is not configured.
    """
    try:
        SessionLocal = get_scoped_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def get_raw_session() -> Iterator[Session]:
    """
    Open an unscoped session for trusted internal code.

    NEVER hand this session to route handler code.

    Usage:
        with get_raw_session() as session:
            tenant = session.query(Tenant).filter(Tenant.slug == slug).first()
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError as e:
        raise RuntimeError(f"Database not configured: {e}")

    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
