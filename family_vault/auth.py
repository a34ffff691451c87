"""Registration, login and resolving bearer tokens to users."""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from . import identity
from .database import USERS, create_document, get_db
from .errors import AuthenticationError, ConflictError, ValidationError
from .schemas import User as UserSchema
from .security import create_access_token, decode_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

# auto_error is off so a missing header goes through the same 401 body as a bad token.
# tokenUrl is the form-encoded OAuth2 password route; /api/auth/login takes JSON.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def register(
    db: Database,
    name: str,
    email: str,
    password: str,
    national_id: Optional[str] = None,
) -> Tuple[str, Dict[str, Any]]:
    if not name or not name.strip() or not email or not password:
        logger.warning("Registration failed: missing credentials for email %s", email)
        raise ValidationError("Please provide name, email, and password")

    email = identity.normalize_email(email)
    if identity.find_by_email(db, email):
        logger.warning("Registration failed: email already exists for %s", email)
        raise ConflictError("User already exists with this email")

    if national_id:
        if not identity.is_valid_national_id(national_id):
            raise ValidationError("Please add a valid 12-digit national ID")
        if identity.find_by_national_id(db, national_id):
            logger.warning("Registration failed: national ID already registered")
            raise ConflictError("User already exists with this national ID")

    data = UserSchema(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        national_id=national_id or None,
    )
    try:
        record = create_document(db, USERS, data)
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        raise ConflictError("User already exists with this email or national ID")

    record.pop("password_hash", None)
    logger.info("User registered: %s (ID: %s)", record["email"], record["_id"])
    return create_access_token(str(record["_id"])), record


def authenticate(db: Database, email: str, password: str) -> Tuple[str, Dict[str, Any]]:
    if not email or not password:
        raise ValidationError("Please provide an email and password")

    user = identity.find_by_email(db, email, with_password=True)
    if not user or not verify_password(password, user.get("password_hash")):
        logger.warning("Login failed: invalid credentials for email %s", email)
        raise AuthenticationError("Invalid credentials")

    user.pop("password_hash", None)
    logger.info("User logged in: %s (ID: %s)", user["email"], user["_id"])
    return create_access_token(str(user["_id"])), user


def verify_token(token: Optional[str]) -> str:
    return decode_access_token(token)


def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Database = Depends(get_db)) -> Dict[str, Any]:
    try:
        user_id = verify_token(token)
    except AuthenticationError as exc:
        logger.warning("Authentication failed: %s", exc.message)
        raise
    user = identity.find_by_id(db, user_id)
    if not user:
        logger.warning("Authentication failed: user not found for token subject %s", user_id)
        raise AuthenticationError("Not authorized to access this route (User not found)")
    return user
