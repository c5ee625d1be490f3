"""
Pytest configuration and shared fixtures for CitizenES tests
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from citizenes import models  # noqa: F401  registers the mappers
from citizenes.core.database import Base, build_engine, get_db
from citizenes.main import app
from citizenes.models import User
from citizenes.schemas.feedback import FeedbackCreate, LocationInput
from citizenes.services.auth import AuthService
from citizenes.services.event_broker import EventBroker, get_event_broker
from citizenes.services.feedback_service import FeedbackService
from citizenes.services.notifications import FeedbackNotifier


def make_user(db, email, first_name, last_name=None, role="user", category="citizen", password="secret123"):
    user = User(
        email=email,
        password_hash=AuthService.get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        category=category,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {AuthService.create_access_token(user.id)}"}


def token_for(user):
    return AuthService.create_access_token(user.id)


@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def broker():
    return EventBroker(queue_size=10)


@pytest.fixture
def notifier(broker):
    return FeedbackNotifier(broker)


@pytest.fixture
def citizen(db):
    return make_user(db, "amina@example.com", "Amina", "Uwase")


@pytest.fixture
def neighbour(db):
    return make_user(db, "jean@example.com", "Jean", "Habimana")


@pytest.fixture
def admin(db):
    return make_user(db, "officer@example.com", "Grace", "Mukamana", role="admin", category="infrastructure")


@pytest.fixture
def feedback_input():
    return FeedbackCreate(
        title="Broken streetlight on KN 5 Rd",
        description="The streetlight near the bus stop has been out for two weeks.",
        type="complaint",
        category="infrastructure",
        subcategory="lighting",
        location=LocationInput(
            country="Rwanda",
            province="Kigali",
            district="Gasabo",
            sector="Remera"
        )
    )


@pytest.fixture
def feedback(db, notifier, citizen, feedback_input):
    """Non-anonymous feedback authored by the citizen"""
    return FeedbackService(db, notifier).create_feedback(feedback_input, citizen)


@pytest.fixture
def anonymous_feedback(db, notifier, feedback_input):
    data = feedback_input.model_copy(update={"is_anonymous": True, "title": "Illegal dumping"})
    return FeedbackService(db, notifier).create_feedback(data, None)


@pytest.fixture
def client(session_factory, broker):
    """TestClient sharing the test database and broker"""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_broker] = lambda: broker
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
