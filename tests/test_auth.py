"""Tests for registration, login and bearer tokens."""

from datetime import timedelta

import pytest
from bson import ObjectId

from family_vault import auth
from family_vault.errors import AuthenticationError, ConflictError
from family_vault.security import create_access_token, hash_password, verify_password

from .helpers import api_register, bearer


class TestRegister:
    def test_register_returns_token_and_user(self, client):
        response = api_register(client, "Alice", "Alice@X.com", "secret1")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["token"]
        assert body["user"]["email"] == "alice@x.com"
        assert body["user"]["familyMembers"] == []
        assert "password" not in body["user"]
        assert "passwordHash" not in body["user"]

    def test_password_is_stored_hashed(self, client, db):
        api_register(client, "Alice", "alice@x.com", "secret1")
        record = db["users"].find_one({"email": "alice@x.com"})
        assert record["password_hash"] != "secret1"
        assert verify_password("secret1", record["password_hash"])

    def test_duplicate_email_is_case_insensitive(self, client):
        api_register(client, "Alice", "alice@x.com", "secret1")
        response = api_register(client, "Other", "ALICE@x.com", "secret2")

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "User already exists with this email"}

    def test_duplicate_national_id_conflicts(self, make_user):
        make_user("Alice", "alice@x.com", national_id="123456789012")
        with pytest.raises(ConflictError):
            make_user("Bob", "bob@x.com", national_id="123456789012")

    def test_absent_national_ids_are_not_duplicates(self, client, db):
        assert api_register(client, "Alice", "alice@x.com", "secret1").status_code == 201
        assert api_register(client, "Bob", "bob@x.com", "secret2").status_code == 201
        assert db["users"].count_documents({"national_id": {"$exists": True}}) == 0

    def test_blank_national_id_is_treated_as_absent(self, client):
        response = api_register(client, "Alice", "alice@x.com", "secret1", national_id="")
        assert response.status_code == 201
        assert response.json()["user"]["nationalId"] is None

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "a@x.com", "password": "secret1"},
            {"name": "A", "password": "secret1"},
            {"name": "A", "email": "a@x.com"},
            {"name": "A", "email": "not-an-email", "password": "secret1"},
            {"name": "A", "email": "a@x.com", "password": "123"},
            {"name": "A", "email": "a@x.com", "password": "secret1", "nationalId": "12345"},
        ],
    )
    def test_invalid_bodies_are_rejected(self, client, body):
        response = client.post("/api/auth/register", json=body)
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestLogin:
    def test_login_success(self, client):
        api_register(client, "Alice", "alice@x.com", "secret1")
        response = client.post("/api/auth/login", json={"email": "alice@x.com", "password": "secret1"})

        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Alice"

    def test_wrong_password_and_unknown_email_look_the_same(self, client):
        api_register(client, "Alice", "alice@x.com", "secret1")
        wrong = client.post("/api/auth/login", json={"email": "alice@x.com", "password": "nope!!"})
        unknown = client.post("/api/auth/login", json={"email": "ghost@x.com", "password": "secret1"})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"success": False, "error": "Invalid credentials"}

    def test_missing_password(self, client):
        response = client.post("/api/auth/login", json={"email": "alice@x.com"})
        assert response.status_code == 400

    def test_service_rejects_bad_credentials(self, db, make_user):
        make_user()
        with pytest.raises(AuthenticationError):
            auth.authenticate(db, "alice@x.com", "wrong-one")


class TestTokenRoute:
    def test_password_form_issues_usable_token(self, client):
        api_register(client, "Alice", "alice@x.com", "secret1")

        response = client.post("/api/auth/token", data={"username": "alice@x.com", "password": "secret1"})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        me = client.get("/api/users/me", headers=bearer(body["access_token"]))
        assert me.json()["data"]["email"] == "alice@x.com"

    def test_password_form_bad_credentials(self, client):
        api_register(client, "Alice", "alice@x.com", "secret1")
        response = client.post("/api/auth/token", data={"username": "alice@x.com", "password": "nope!!"})
        assert response.status_code == 401

    def test_openapi_points_at_token_route(self, client):
        schemes = client.get("/openapi.json").json()["components"]["securitySchemes"]
        assert schemes["OAuth2PasswordBearer"]["flows"]["password"]["tokenUrl"] == "/api/auth/token"


class TestTokens:
    def test_token_round_trip(self, make_user):
        token, user = make_user()
        assert auth.verify_token(token) == str(user["_id"])

    def test_missing_token(self, client):
        response = client.get("/api/users/me")
        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.headers["www-authenticate"] == "Bearer"

    def test_garbage_token(self, client):
        response = client.get("/api/users/me", headers=bearer("not.a.token"))
        assert response.status_code == 401

    def test_expired_token(self, client, make_user):
        _, user = make_user()
        token = create_access_token(str(user["_id"]), expires_delta=timedelta(seconds=-5))

        response = client.get("/api/users/me", headers=bearer(token))
        assert response.status_code == 401
        assert "expired" in response.json()["error"].lower()

    def test_token_for_deleted_user(self, client):
        token = create_access_token(str(ObjectId()))
        response = client.get("/api/users/me", headers=bearer(token))
        assert response.status_code == 401

    def test_verify_rejects_empty(self):
        with pytest.raises(AuthenticationError):
            auth.verify_token(None)


def test_verify_password_handles_missing_hash():
    assert verify_password("secret1", None) is False
    assert verify_password("secret1", hash_password("secret1")) is True
