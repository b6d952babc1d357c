import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set testing environment variable before the app reads its settings
os.environ["TESTING"] = "1"

# Ensure we're using SQLite for tests
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"

from clinic.main import app
from clinic.core.database import Base, get_db, redis_client
from clinic.core.seed import seed_all
from clinic.models import user, role, patient, doctor, consultation  # noqa: F401
from clinic.services.notifications import NotificationGateway, get_notifier

# Create test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


class RecordingGateway(NotificationGateway):
    """Keeps every notification it is asked to send."""

    def __init__(self):
        self.events = []

    def notify_email_confirmation(self, user, token):
        self.events.append(("email_confirmation", user.id, token))

    def notify_booked(self, consultation, doctor, patient):
        self.events.append(("booked", consultation.id))

    def notify_assigned_nurse(self, consultation, nurse):
        self.events.append(("assigned_nurse", consultation.id, nurse.id))

    def notify_status_changed(self, consultation, old_status, new_status):
        self.events.append(("status_changed", consultation.id, old_status.value, new_status.value))

    def notify_cancelled(self, consultation, cancelled_by):
        self.events.append(("cancelled", consultation.id))


class FailingGateway(NotificationGateway):
    def notify_email_confirmation(self, user, token):
        raise ConnectionError("mail server unreachable")

    def notify_booked(self, consultation, doctor, patient):
        raise ConnectionError("mail server unreachable")

    def notify_assigned_nurse(self, consultation, nurse):
        raise ConnectionError("mail server unreachable")

    def notify_status_changed(self, consultation, old_status, new_status):
        raise ConnectionError("mail server unreachable")

    def notify_cancelled(self, consultation, cancelled_by):
        raise ConnectionError("mail server unreachable")


@pytest.fixture(scope="function")
def test_db():
    # Create tables and the permission catalogue, system roles and admin
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        seed_all(session)
    finally:
        session.close()
    redis_client.flushall()
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def client(test_db):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def notifier():
    gateway = RecordingGateway()
    app.dependency_overrides[get_notifier] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_notifier, None)

@pytest.fixture
def failing_notifier():
    gateway = FailingGateway()
    app.dependency_overrides[get_notifier] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_notifier, None)
