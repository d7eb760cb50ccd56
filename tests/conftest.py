"""Pytest configuration and fixtures."""

import pytest
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stock_engine.core.cache import cache
from stock_engine.core.rbac import UserRole
from stock_engine.core.security import get_password_hash, create_access_token
from stock_engine.db.base import Base
from stock_engine.db.session import enable_sqlite_foreign_keys, get_db
from stock_engine.main import app
# Import all models to ensure they're registered with Base.metadata
from stock_engine.models import *
from stock_engine.models.product import Product
from stock_engine.models.user import User
from stock_engine.services.product_service import ProductService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(autouse=True)
def clear_stock_cache():
    """Cached totals are keyed by product id, which every test database reuses."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def file_session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """File-backed SQLite for tests that need one session per thread."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'stock_engine_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from stock_engine.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def test_user(db_session: Session) -> User:
    """Create a test user."""
    user = User(
        email="test@example.com",
        password_hash=get_password_hash("testpass123"),
        role=UserRole.OWNER,
        name="Test User",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def staff_user(db_session: Session) -> User:
    """Create a staff user (can book, cannot convert or adjust)."""
    user = User(
        email="crew@example.com",
        password_hash=get_password_hash("crewpass123"),
        role=UserRole.STAFF,
        name="Crew Member",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _headers_for(user: User) -> dict:
    token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role.value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_token(test_user: User) -> str:
    """Get an authentication token for the test user."""
    return create_access_token(
        data={"sub": str(test_user.id), "email": test_user.email, "role": test_user.role.value}
    )


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def staff_headers(staff_user: User) -> dict:
    return _headers_for(staff_user)


@pytest.fixture
def make_product(db_session: Session) -> Callable[..., Product]:
    """Factory creating products with opening bulk stock."""
    def _make(name: str = "Folding Chair", bulk: int = 0, **kwargs) -> Product:
        return ProductService(db_session).create(
            name=name,
            actor="tests",
            initial_bulk_quantity=bulk,
            **kwargs,
        )
    return _make


@pytest.fixture
def test_product(make_product) -> Product:
    """A tracked product with 50 units in the bulk pool."""
    return make_product(name="Stage Deck", bulk=50)
