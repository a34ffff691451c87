"""Tests for the unique indexes backing email and national ID uniqueness."""

import pytest

from family_vault import identity
from family_vault.database import ensure_indexes
from family_vault.errors import ConflictError


@pytest.fixture
def indexed_db(db):
    ensure_indexes(db)
    return db


@pytest.fixture
def no_lookups(monkeypatch):
    """Skip the pre-insert lookups so only the indexes stand in the way."""
    monkeypatch.setattr(identity, "find_by_email", lambda *args, **kwargs: None)
    monkeypatch.setattr(identity, "find_by_national_id", lambda *args, **kwargs: None)


def test_index_set(indexed_db):
    users = indexed_db["users"].index_information()
    documents = indexed_db["documents"].index_information()

    assert users["email_1"]["unique"] is True
    assert users["national_id_1"]["unique"] is True
    assert users["national_id_1"]["sparse"] is True
    assert "owner_id_1_created_at_-1" in documents
    assert "shared_with_1" in documents


def test_users_without_national_id_do_not_collide(indexed_db, make_user):
    make_user("Alice", "alice@x.com")
    make_user("Bob", "bob@x.com")
    assert indexed_db["users"].count_documents({}) == 2


def test_register_race_on_email_is_conflict(indexed_db, make_user, no_lookups):
    make_user("Alice", "alice@x.com")
    with pytest.raises(ConflictError):
        make_user("Other", "alice@x.com")
    assert indexed_db["users"].count_documents({}) == 1


def test_register_race_on_national_id_is_conflict(indexed_db, make_user, no_lookups):
    make_user("Alice", "alice@x.com", national_id="123456789012")
    with pytest.raises(ConflictError):
        make_user("Bob", "bob@x.com", national_id="123456789012")
    assert indexed_db["users"].count_documents({}) == 1


def test_profile_update_race_on_national_id_is_conflict(indexed_db, make_user, no_lookups):
    make_user("Alice", "alice@x.com", national_id="123456789012")
    _, bob = make_user("Bob", "bob@x.com")

    with pytest.raises(ConflictError):
        identity.update_profile(indexed_db, bob, {"national_id": "123456789012"})

    assert "national_id" not in identity.find_by_id(indexed_db, bob["_id"])
