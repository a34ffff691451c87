"""
Family links between identities.

Each user keeps its own ``family_members`` set. Linking writes the actor's
record first and then mirrors the change onto the other member's record.
There is no transaction across the two: if the mirror write fails the link
stays one-directional, the failure is logged and the request still succeeds.
"""

import logging
from typing import Any, Dict

from pymongo.database import Database
from pymongo.errors import PyMongoError

from . import identity
from .errors import AuthenticationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

IDENTIFIER_TYPES = ("email", "nationalId")


def resolve_identifier(db: Database, identifier_type: str, value: str) -> Dict[str, Any]:
    if identifier_type not in IDENTIFIER_TYPES or not value:
        raise ValidationError("Please provide a valid identifier (email or nationalId) and type")

    if identifier_type == "email":
        user = identity.find_by_email(db, value)
    else:
        if not identity.is_valid_national_id(value):
            raise ValidationError("Invalid national ID format")
        user = identity.find_by_national_id(db, value)

    if not user:
        raise NotFoundError("User not found with the provided identifier")
    return user


def _is_linked(user: Dict[str, Any], member_id: Any) -> bool:
    return any(str(m) == str(member_id) for m in user.get("family_members") or ())


def link_family_member(db: Database, actor: Dict[str, Any], identifier: str, identifier_type: str) -> Dict[str, Any]:
    user_id = actor["_id"]
    try:
        member = resolve_identifier(db, identifier_type, identifier)
    except (ValidationError, NotFoundError) as exc:
        logger.warning("Add family member failed for user %s: %s", user_id, exc.message)
        raise
    member_id = member["_id"]

    if member_id == user_id:
        logger.warning("Add family member failed for user %s: cannot link self", user_id)
        raise ValidationError("Cannot link yourself as a family member")

    current = identity.find_by_id(db, user_id)
    if not current:
        raise AuthenticationError("Authenticated user not found")
    if _is_linked(current, member_id):
        logger.warning("Add family member failed for user %s: %s is already linked", user_id, member_id)
        raise ConflictError("This user is already linked as a family member")

    updated = identity.add_family_link(db, user_id, member_id)
    if not updated:
        raise AuthenticationError("Authenticated user not found")

    try:
        if identity.add_family_link(db, member_id, user_id) is None:
            logger.warning("Family link from %s to %s is one-directional: member record missing", user_id, member_id)
        else:
            logger.info("Mutual family link created between %s and %s", user_id, member_id)
    except PyMongoError as exc:
        logger.error("Failed to create mutual family link between %s and %s: %s", user_id, member_id, exc)

    logger.info("User %s linked user %s as family member", user_id, member_id)
    return updated


def unlink_family_member(db: Database, actor: Dict[str, Any], member_id: str) -> Dict[str, Any]:
    user_id = actor["_id"]
    member_oid = identity.to_object_id(member_id)
    if member_oid is None:
        logger.warning("Remove family member failed for user %s: invalid member ID %s", user_id, member_id)
        raise ValidationError(f"Invalid member ID format: {member_id}")

    if member_oid == user_id:
        logger.warning("Remove family member failed for user %s: cannot unlink self", user_id)
        raise ValidationError("Cannot unlink yourself from your family")

    current = identity.find_by_id(db, user_id)
    if not current:
        raise AuthenticationError("Authenticated user not found")
    if not _is_linked(current, member_oid):
        logger.warning("Remove family member failed for user %s: %s is not linked", user_id, member_oid)
        raise ValidationError("This user is not linked as a family member")

    updated = identity.remove_family_link(db, user_id, member_oid)
    if not updated:
        raise AuthenticationError("Authenticated user not found")

    try:
        if identity.remove_family_link(db, member_oid, user_id) is None:
            logger.warning("Mirror unlink skipped for %s: member record %s missing", user_id, member_oid)
        else:
            logger.info("Mutual family link removed between %s and %s", user_id, member_oid)
    except PyMongoError as exc:
        logger.error("Failed to remove mutual family link between %s and %s: %s", user_id, member_oid, exc)

    logger.info("User %s unlinked user %s from family members", user_id, member_oid)
    return updated
