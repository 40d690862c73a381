import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest

# Configure before the app modules read settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_URL"] = "http://identity.local"
os.environ["AUTH_PUBLIC_KEY"] = "test-signing-secret"
os.environ["AUTH_JWT_ALGORITHM"] = "HS256"
os.environ["AUTH_AUDIENCE"] = "authenticated"

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from fintrack.core.identity import IdentityUser
from fintrack.core.rate_limit import RateLimiter
from fintrack.database import enable_sqlite_foreign_keys, get_session, get_session_factory
from fintrack.main import create_app
from fintrack.models.property import Property
from fintrack.models.share_visit import ShareVisit  # noqa: F401
from fintrack.models.transaction import Transaction  # noqa: F401
from fintrack.services.live import ChangeFeed


def make_token(user: IdentityUser, expires_in: timedelta = timedelta(hours=1)) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "aud": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(claims, "test-signing-secret", algorithm="HS256")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def owner():
    return IdentityUser(id=uuid.uuid4(), email="owner@example.com")


@pytest.fixture
def stranger():
    return IdentityUser(id=uuid.uuid4(), email="stranger@example.com")


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def limiter():
    # No random sweeps during tests
    return RateLimiter(sweep_probability=0)


def build_app(engine, feed, limiter):
    app = create_app(rate_limiter=limiter, change_feed=feed)

    def _session_override():
        with Session(engine) as session:
            yield session

    def _open_session():
        return Session(engine)

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_session_factory] = lambda: _open_session
    return app


@pytest.fixture
def app(engine, feed, limiter):
    return build_app(engine, feed, limiter)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(owner):
    return {"Authorization": f"Bearer {make_token(owner)}"}


@pytest.fixture
def stranger_headers(stranger):
    return {"Authorization": f"Bearer {make_token(stranger)}"}


@pytest.fixture
def prop(session, owner):
    p = Property(id=uuid.uuid4(), name="Maple Court", user_id=owner.id)
    session.add(p)
    session.commit()
    session.refresh(p)
    return p
