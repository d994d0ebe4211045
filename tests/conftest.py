"""
Hostel Outing Pass - Test Configuration and Fixtures
"""
import os

import mongomock
import pytest

# Set testing environment
os.environ["LOG_FILE"] = ""
os.environ["JWT_SECRET"] = "test-jwt-secret"

from fastapi.testclient import TestClient

from main import app, get_service
from notifications import NotificationSink
from schemas import SystemState
from service import GatePassService
from store import PassStore
from tests.factories import SteppingClock


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["gatepass_test"]


@pytest.fixture
def store(mongo_db):
    return PassStore(mongo_db, SystemState(is_window_open=True, capacity=2, opening_time="17:00"))


@pytest.fixture
def service(store, clock):
    return GatePassService(store, NotificationSink(maxlen=20), clock=clock)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def _login(role, **fields):
        response = client.post("/auth/login", json={"role": role, **fields})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['token']}"}
    return _login
