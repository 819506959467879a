"""
Fixtures for the HTTP layer tests. Every test gets a fresh app, backed by its
own sqlite database and a fixed set of known users.
"""

import json

import pytest
from fastapi.testclient import TestClient

from groupmod.api.app import app
from groupmod.api.dependencies import SETTINGS

KNOWN_USERS = ["alice", "bob", "carol", "dave", "erin"]


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("GROUPMOD_DATABASE_TYPE", "sqlite")
    monkeypatch.setenv("GROUPMOD_DATABASE_DB", str(tmp_path / "groupmod.db"))
    monkeypatch.setenv("GROUPMOD_KNOWN_USER_IDS", json.dumps(KNOWN_USERS))
    monkeypatch.setenv("GROUPMOD_REPORT_THRESHOLD", "3")
    monkeypatch.delenv("GROUPMOD_USER_SERVICE_URL", raising=False)

    SETTINGS.cache_clear()

    with TestClient(app) as client:
        yield client

    SETTINGS.cache_clear()


@pytest.fixture
def as_user():
    def headers(user_id: str) -> dict[str, str]:
        return {"X-User-Id": user_id}

    return headers


@pytest.fixture
def group(client, as_user):
    """
    A group created by alice, with bob as a member.
    """
    response = client.put(
        "/groups",
        json={"name": "book club", "member_ids": ["bob"]},
        headers=as_user("alice"),
    )
    assert response.status_code == 201
    return response.json()
