"""
Volunteer Platform API - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Generator

import mongomock
import pytest
from fastapi.testclient import TestClient

# Set testing environment
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-jwt-secret-key-for-testing"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DATABASE_NAME"] = "volunteer_platform_test"

from database import ensure_indexes, get_db
from main import app, get_outcome_decider
from payments import FixedOutcomeDecider
from rate_limiter import limiter

PASSWORD = "secret123"


def future_date(days: int = 7) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def auth_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db():
    """Fresh in-memory database with the production indexes"""
    database = mongomock.MongoClient()["volunteer_platform_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def decider() -> FixedOutcomeDecider:
    """Payment outcome under test control; flip `.outcome` to force a decline"""
    return FixedOutcomeDecider(True)


@pytest.fixture
def client(db, decider) -> Generator[TestClient, None, None]:
    """Test client wired to the in-memory database.

    Not entered as a context manager: the lifespan would try to reach a real
    MongoDB server.
    """
    limiter.reset()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_outcome_decider] = lambda: decider
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client: TestClient, email: str, role: str = "volunteer", name: str = "Test User") -> Dict:
    response = client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": PASSWORD, "role": role},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def volunteer(client) -> Dict:
    body = register(client, "volunteer@example.com", name="Vera Volunteer")
    return {"token": body["token"], "user": body["user"], "headers": auth_header(body["token"])}


@pytest.fixture
def admin(client) -> Dict:
    body = register(client, "admin@example.com", role="admin", name="Ada Admin")
    return {"token": body["token"], "user": body["user"], "headers": auth_header(body["token"])}


@pytest.fixture
def ngo_owner(client) -> Dict:
    body = register(client, "owner@example.com", role="ngo", name="Olu Owner")
    return {"token": body["token"], "user": body["user"], "headers": auth_header(body["token"])}


@pytest.fixture
def approved_ngo(client, ngo_owner, admin) -> Dict:
    """NGO registered by `ngo_owner` and approved by `admin`"""
    response = client.post(
        "/api/ngo/register",
        json={"name": "Helping Hands", "email": "contact@helpinghands.org", "description": "Food drives"},
        headers=ngo_owner["headers"],
    )
    assert response.status_code == 201, response.text
    ngo = response.json()["data"]
    response = client.put(f"/api/ngo/{ngo['id']}/approve", headers=admin["headers"])
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.fixture
def event(client, ngo_owner, approved_ngo) -> Dict:
    response = client.post(
        "/api/event",
        json={"title": "Beach Cleanup", "date": future_date(), "location": "Marina Beach", "maxVolunteers": 2},
        headers=ngo_owner["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]
