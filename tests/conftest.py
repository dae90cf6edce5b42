"""
e-Stamp backend - test configuration and fixtures.

Every test gets a fresh in-memory mongomock database in place of database.db.
"""
import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import database
from main import app


@pytest.fixture(autouse=True)
def mock_db(monkeypatch):
    db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def otp_echo(monkeypatch):
    monkeypatch.setattr(config, "OTP_ECHO", True)


@pytest.fixture
def admin_headers(client):
    response = client.post(
        "/api/admin/login",
        json={"username": config.ADMIN_USERNAME, "password": config.ADMIN_PASSWORD},
    )
    assert response.status_code == 200
    return {"X-Admin-Token": response.json()["token"]}


@pytest.fixture
def user_session(client):
    response = client.post(
        "/api/auth/signup",
        json={"email": "asha@example.com", "password": "secret123", "displayName": "Asha"},
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def user_headers(user_session):
    return {"X-Auth-Token": user_session["token"]}


@pytest.fixture
def location(client, admin_headers):
    """A state with one district and one tehsil."""
    state = client.post("/api/admin/states", json={"name": "Uttar Pradesh", "code": "up"}, headers=admin_headers).json()
    district = client.post(
        "/api/admin/districts", json={"name": "Lucknow", "stateId": state["id"]}, headers=admin_headers
    ).json()
    tehsil = client.post(
        "/api/admin/tehsils", json={"name": "Sadar", "districtId": district["id"]}, headers=admin_headers
    ).json()
    return {"state": state, "district": district, "tehsil": tehsil}
