"""
Shared fixtures: in-memory SQLite, a TestClient wired to it, and user/token helpers.
"""
import os

# Configure the app before anything under app/ is imported
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"

from datetime import datetime, timedelta
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models.user import User
from app.utils.auth import TokenService, hash_password

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEFAULT_PASSWORD = "secret123"


class FrozenClock:
    """Injectable clock for ChainEngine; call advance() to move time forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0))


@pytest.fixture
def token_service():
    return TokenService(get_settings())


@pytest.fixture
def make_user(db_session):
    sequence = count(1)

    def _make_user(plan_tier="free", username=None, is_active=True, name="Alice Martin"):
        n = next(sequence)
        user = User(
            name=name,
            email=f"user{n}@daftlink.io",
            hashed_password=hash_password(DEFAULT_PASSWORD),
            username=username or f"user{n}",
            plan_tier=plan_tier,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers(token_service):
    def _auth_headers(user):
        return {"Authorization": f"Bearer {token_service.issue(user.id)}"}

    return _auth_headers
