"""
MongoDB access for the vault.

Two collections:
- users     -> identities and their family-member sets
- documents -> document metadata and shared-with sets

The client is created lazily and shared by every request; pymongo pools
connections and is safe to use from FastAPI's worker threads.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import settings

logger = logging.getLogger(__name__)

USERS = "users"
DOCUMENTS = "documents"

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(settings.database_url, tz_aware=True)
        logger.info("MongoDB client created for database %s", settings.database_name)
    return _client


def get_db() -> Database:
    return get_client()[settings.database_name]


def close_client():
    global _client
    if _client is not None:
        _client.close()
        _client = None


def ensure_indexes(db: Database):
    db[USERS].create_index("email", unique=True)
    # national_id is omitted rather than stored as null, so a sparse index
    # only constrains users that actually have one
    db[USERS].create_index("national_id", unique=True, sparse=True)
    db[DOCUMENTS].create_index([("owner_id", ASCENDING), ("created_at", DESCENDING)])
    db[DOCUMENTS].create_index("shared_with")


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a record stamped with created_at/updated_at and return it with its _id."""
    if isinstance(data, BaseModel):
        record = data.model_dump(exclude_none=True)
    else:
        record = dict(data)
    stamp = now()
    record["created_at"] = stamp
    record["updated_at"] = stamp
    result = db[collection_name].insert_one(record)
    record["_id"] = result.inserted_id
    return record


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Dict[str, Any],
    sort: Optional[List] = None,
    skip: int = 0,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict)
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
