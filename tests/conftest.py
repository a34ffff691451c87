"""
Shared fixtures: an in-memory MongoDB, a temporary upload directory and a
TestClient wired to both through dependency overrides.
"""

import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

import mongomock
import pytest
from fastapi.testclient import TestClient

from family_vault import auth
from family_vault.database import get_db
from family_vault.main import create_app
from family_vault.storage import LocalFileStorage, get_storage


@pytest.fixture
def db():
    client = mongomock.MongoClient(tz_aware=True)
    yield client["family_vault_test"]
    client.close()


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path / "uploads", max_size=1024 * 1024)


@pytest.fixture
def app(db, storage):
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_storage] = lambda: storage
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    """Register a user directly through the service; returns (token, record)."""

    def _make(name="Alice", email="alice@x.com", password="secret1", national_id=None):
        return auth.register(db, name, email, password, national_id)

    return _make

