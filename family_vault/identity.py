"""Identity store: user records, lookups and profile updates."""

import logging
import re
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from . import access
from .database import USERS, now
from .errors import AuthenticationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

NATIONAL_ID_RE = re.compile(r"^\d{12}$")

# Mutable profile fields; everything else in an update payload is ignored
PROFILE_FIELDS = ("name", "national_id")

# Never send the hash back out
PUBLIC_PROJECTION = {"password_hash": 0}


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def is_valid_national_id(value: Any) -> bool:
    return isinstance(value, str) and bool(NATIONAL_ID_RE.match(value))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_by_id(db: Database, user_id: Any) -> Optional[Dict[str, Any]]:
    oid = to_object_id(user_id)
    if oid is None:
        return None
    return db[USERS].find_one({"_id": oid}, PUBLIC_PROJECTION)


def find_by_email(db: Database, email: str, with_password: bool = False) -> Optional[Dict[str, Any]]:
    projection = None if with_password else PUBLIC_PROJECTION
    return db[USERS].find_one({"email": normalize_email(email)}, projection)


def find_by_national_id(db: Database, national_id: str) -> Optional[Dict[str, Any]]:
    return db[USERS].find_one({"national_id": national_id}, PUBLIC_PROJECTION)


def add_family_link(db: Database, user_id: ObjectId, member_id: ObjectId) -> Optional[Dict[str, Any]]:
    return db[USERS].find_one_and_update(
        {"_id": user_id},
        {"$addToSet": {"family_members": member_id}, "$set": {"updated_at": now()}},
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )


def remove_family_link(db: Database, user_id: ObjectId, member_id: ObjectId) -> Optional[Dict[str, Any]]:
    return db[USERS].find_one_and_update(
        {"_id": user_id},
        {"$pull": {"family_members": member_id}, "$set": {"updated_at": now()}},
        projection=PUBLIC_PROJECTION,
        return_document=ReturnDocument.AFTER,
    )


# ------------------------
# Profiles
# ------------------------

def get_profile(db: Database, actor: Dict[str, Any]) -> Dict[str, Any]:
    user = find_by_id(db, actor["_id"])
    if not user:
        raise AuthenticationError("Authenticated user not found")
    logger.info("User profile retrieved: %s (ID: %s)", user["email"], user["_id"])
    return user


def update_profile(db: Database, actor: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    user_id = actor["_id"]
    to_set: Dict[str, Any] = {}
    to_unset: Dict[str, Any] = {}

    for field in PROFILE_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "name":
            if not value or not str(value).strip():
                raise ValidationError("Name cannot be empty")
            to_set["name"] = str(value).strip()
        elif value is None or value == "":
            to_unset["national_id"] = ""
        else:
            if not is_valid_national_id(value):
                logger.warning("Update failed for user %s: invalid national ID format", user_id)
                raise ValidationError("Invalid national ID format")
            holder = find_by_national_id(db, value)
            if holder and holder["_id"] != user_id:
                logger.warning("Update failed for user %s: national ID already in use", user_id)
                raise ConflictError("National ID already registered to another user")
            to_set["national_id"] = value

    if not to_set and not to_unset:
        logger.warning("Update failed for user %s: no valid fields provided", user_id)
        raise ValidationError("No valid fields provided for update (Allowed: name, nationalId)")

    to_set["updated_at"] = now()
    update: Dict[str, Any] = {"$set": to_set}
    if to_unset:
        update["$unset"] = to_unset
    try:
        updated = db[USERS].find_one_and_update(
            {"_id": user_id},
            update,
            projection=PUBLIC_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise ConflictError("National ID already registered to another user")
    if not updated:
        raise AuthenticationError("Authenticated user not found")

    logger.info("User profile updated: %s (ID: %s)", updated["email"], user_id)
    return updated


def get_user(db: Database, actor: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    target_id = to_object_id(user_id)
    if target_id is None:
        logger.warning("Get user failed for %s: invalid user ID format %s", actor["_id"], user_id)
        raise ValidationError(f"Invalid user ID format: {user_id}")

    access.ensure_can_view_profile(actor, target_id)

    user = find_by_id(db, target_id)
    if not user:
        logger.warning("User profile %s not found (requested by %s)", target_id, actor["_id"])
        raise NotFoundError(f"User profile not found with ID of {user_id}")

    logger.info("User profile %s retrieved by %s", target_id, actor["_id"])
    return user
