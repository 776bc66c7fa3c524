"""Pytest configuration and fixtures"""
import os

# Settings are read at import time; point them at SQLite before importing the app
TEST_DATABASE_URL = "sqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EVENTS_ENABLED"] = "false"

import copy
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from policy_service import models  # noqa: F401
from policy_service.database import Base, get_db
from policy_service.main import app
from policy_service.services.policy_service import PolicyService
from policy_service.services.store import PolicyStore

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingPublisher:
    """Stands in for EventPublisher and remembers what it was asked to publish"""

    def __init__(self):
        self.events = []

    def publish_policy_created(self, document):
        self.events.append(("created", document.policy.policy_id, document))

    def publish_policy_updated(self, policy_id, document, changes=None):
        self.events.append(("updated", policy_id, changes))

    def publish_policy_deleted(self, policy_id, tenant_id):
        self.events.append(("deleted", policy_id, tenant_id))


class FailingPublisher:
    """Publisher whose every call blows up"""

    def publish_policy_created(self, document):
        raise RuntimeError("event bus unreachable")

    def publish_policy_updated(self, policy_id, document, changes=None):
        raise RuntimeError("event bus unreachable")

    def publish_policy_deleted(self, policy_id, tenant_id):
        raise RuntimeError("event bus unreachable")


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database session override"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def failing_publisher() -> FailingPublisher:
    return FailingPublisher()


@pytest.fixture
def service(db: Session, publisher: RecordingPublisher) -> PolicyService:
    """Lifecycle manager over the test database"""
    return PolicyService(PolicyStore(db), publisher)


@pytest.fixture
def sample_policy_data() -> dict:
    """Policy document with a dangling assignment (rule 9 does not exist)"""
    return copy.deepcopy({
        "policy": {
            "PolicyId": "policy-1",
            "version": "1.0",
            "tenantId": "tenant-a",
            "location": "us-east-1",
            "rules": {
                "r1": {"id": "1", "action": "ALLOW", "resource": "invoices/*", "conditions": "business_hours"},
                "r2": {"id": "2", "action": "DENY", "resource": "invoices/delete", "conditions": "always"},
            },
            "assignments": {
                "groups": {"g1": ["1", "2"], "g2": ["1", "9"]},
                "users": {},
            },
        }
    })


@pytest.fixture
def make_policy_data(sample_policy_data: dict):
    """Build a variant of the sample document with a different id/tenant"""

    def _make(policy_id: str, tenant_id: str = "tenant-a") -> dict:
        data = copy.deepcopy(sample_policy_data)
        data["policy"]["PolicyId"] = policy_id
        data["policy"]["tenantId"] = tenant_id
        return data

    return _make
