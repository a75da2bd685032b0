"""
Shared fixtures: an in-memory database and a TestClient wired to it.
"""
import os

# Must be in place before the settings object is created on first import
os.environ["WEBHOOK_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("ADMIN_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import settings
from balances_webhook.api import routes
from balances_webhook.api.main import app
from balances_webhook.models.database import Base, get_db
from balances_webhook.models.source import Source, UserSource

TEST_SECRET = "test-secret"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_settings():
    return settings.model_copy(update={"webhook_secret": TEST_SECRET, "admin_api_key": None})


@pytest.fixture
def client(db_session, test_settings):
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[routes.get_settings] = lambda: test_settings
    routes.rate_limiter.reset()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {
        "Authorization": f"Bearer {TEST_SECRET}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def structured_payload():
    return {
        "source": "bancolombia",
        "timestamp": "2025-09-04T08:06:00Z",
        "sourceFrom": "notificaciones@bancolombia.com.co",
        "sourceTo": "owner@example.com",
        "event": "deposit",
        "message": "Recibiste una transferencia por $75,000",
        "amount": 75000,
        "webhookId": "dup-1",
    }


@pytest.fixture
def sms_payload():
    return {
        "message": (
            "Bancolombia: Recibiste una transferencia por $190,000 de MARIA CUBAQUE "
            "en tu cuenta **7251, el 04/09/2025 a las 08:06"
        ),
        "timestamp": "2025-09-04T13:06:00Z",
        "phone": "+573001234567",
        "webhookId": "sms-1",
    }


@pytest.fixture
def owner_source(db_session):
    """The source structured_payload routes to, with no subscribers."""
    source = Source(source_type="email", source_value="owner@example.com")
    db_session.add(source)
    db_session.commit()
    db_session.refresh(source)
    return source


@pytest.fixture
def subscribed_source(db_session, owner_source):
    """owner_source with user-1 actively subscribed."""
    db_session.add(UserSource(user_id="user-1", source_id=owner_source.id, is_active=True))
    db_session.commit()
    return owner_source
