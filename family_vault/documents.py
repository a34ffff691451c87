"""
Document registry and sharing.

Metadata lives in the ``documents`` collection, bytes in file storage.
Owner, file reference, filename, MIME type and size are fixed at upload;
only the category (``document_type``) and description change afterwards.
The shared_with set only ever grows with ids that are in the owner's family
set at the moment of sharing.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from . import access, identity
from .database import DOCUMENTS, create_document, get_documents, now
from .errors import AuthenticationError, IntegrityFault, NotFoundError, ValidationError
from .schemas import Document as DocumentSchema
from .storage import LocalFileStorage, StoredFile

logger = logging.getLogger(__name__)

SCOPES = ("owned", "shared", "all")

# API sort names -> stored fields
SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "fileName": "file_name",
    "documentType": "document_type",
    "fileSize": "file_size",
}
DEFAULT_SORT = "createdAt"

# Metadata fields an owner may change after upload
MUTABLE_FIELDS = ("document_type", "description")


def _load(db: Database, doc_id: str, user_id: Any, action: str) -> Dict[str, Any]:
    oid = identity.to_object_id(doc_id)
    document = db[DOCUMENTS].find_one({"_id": oid}) if oid is not None else None
    if not document:
        logger.warning("%s failed: document not found with ID %s for user %s", action, doc_id, user_id)
        raise NotFoundError(f"Document not found with ID of {doc_id}")
    return document


def upload(
    db: Database,
    storage: LocalFileStorage,
    owner: Dict[str, Any],
    stored: StoredFile,
    document_type: Optional[str],
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Record metadata for bytes already written by ``storage``."""
    if not document_type or not document_type.strip():
        # the bytes are already on disk; do not leave them orphaned
        storage.delete(stored.path)
        logger.warning("Document upload failed: missing document type for user %s", owner["_id"])
        raise ValidationError("Please provide a document type")

    data = DocumentSchema(
        owner_id=owner["_id"],
        file_path=stored.path,
        file_name=stored.file_name,
        mime_type=stored.mime_type,
        file_size=stored.size,
        document_type=document_type.strip(),
        description=(description or "").strip(),
    )
    try:
        record = create_document(db, DOCUMENTS, data)
    except PyMongoError:
        storage.delete(stored.path)
        logger.error("Document upload failed: metadata insert failed for user %s", owner["_id"])
        raise
    logger.info('Document uploaded: "%s" by user %s', record["file_name"], owner["_id"])
    return record


def scope_filter(actor_id: Any, scope: str) -> Dict[str, Any]:
    if scope == "shared":
        return {"shared_with": actor_id}
    if scope == "all":
        return {"$or": [{"owner_id": actor_id}, {"shared_with": actor_id}]}
    return {"owner_id": actor_id}


def list_documents(
    db: Database,
    actor: Dict[str, Any],
    scope: str = "owned",
    page: int = 1,
    page_size: int = 10,
    sort_field: str = DEFAULT_SORT,
    sort_dir: str = "desc",
) -> Tuple[List[Dict[str, Any]], int]:
    if scope not in SCOPES:
        raise ValidationError(f"Unknown listing scope: {scope}")
    if page < 1 or page_size < 1:
        raise ValidationError("page and limit must be positive")

    query = scope_filter(actor["_id"], scope)
    field = SORT_FIELDS.get(sort_field, SORT_FIELDS[DEFAULT_SORT])
    direction = ASCENDING if sort_dir == "asc" else DESCENDING
    skip = (page - 1) * page_size

    total = db[DOCUMENTS].count_documents(query)
    items = get_documents(db, DOCUMENTS, query, sort=[(field, direction)], skip=skip, limit=page_size)
    logger.info("Fetched %d %s documents for user %s (total: %d)", len(items), scope, actor["_id"], total)
    return items, total


def get_document(db: Database, actor: Dict[str, Any], doc_id: str) -> Dict[str, Any]:
    document = _load(db, doc_id, actor["_id"], "Get")
    access.ensure_can_view_document(actor["_id"], document, "access")
    logger.info('Document retrieved: "%s" (ID: %s) by user %s', document["file_name"], document["_id"], actor["_id"])
    return document


def update_document(db: Database, actor: Dict[str, Any], doc_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    document = _load(db, doc_id, actor["_id"], "Update")
    access.ensure_can_mutate_document(actor["_id"], document, "update")

    to_set: Dict[str, Any] = {}
    for field in MUTABLE_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "document_type":
            if not value or not str(value).strip():
                raise ValidationError("Please select a document type")
            to_set[field] = str(value).strip()
        else:
            to_set[field] = (value or "").strip()

    if not to_set:
        return document

    to_set["updated_at"] = now()
    updated = db[DOCUMENTS].find_one_and_update(
        {"_id": document["_id"]},
        {"$set": to_set},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFoundError(f"Document not found with ID of {doc_id}")
    logger.info('Document updated: "%s" (ID: %s) by user %s', updated["file_name"], updated["_id"], actor["_id"])
    return updated


def delete_document(db: Database, storage: LocalFileStorage, actor: Dict[str, Any], doc_id: str):
    document = _load(db, doc_id, actor["_id"], "Delete")
    access.ensure_can_mutate_document(actor["_id"], document, "delete")

    db[DOCUMENTS].delete_one({"_id": document["_id"]})
    # metadata is gone either way; a leftover file is only logged
    storage.delete(document["file_path"])
    logger.info('Document deleted: "%s" (ID: %s) by user %s', document["file_name"], document["_id"], actor["_id"])


def share_document(db: Database, actor: Dict[str, Any], doc_id: str, candidate_ids: Any) -> Dict[str, Any]:
    user_id = actor["_id"]
    if not isinstance(candidate_ids, list) or any(identity.to_object_id(c) is None for c in candidate_ids):
        logger.warning("Share failed: invalid familyMemberIds for document %s by user %s", doc_id, user_id)
        raise ValidationError("Invalid family member IDs provided")

    document = _load(db, doc_id, user_id, "Share")
    access.ensure_can_mutate_document(user_id, document, "share")

    # family set as of now, not as of login
    owner = identity.find_by_id(db, user_id)
    if not owner:
        raise AuthenticationError("Owner user not found")
    family = {str(m) for m in owner.get("family_members") or ()}

    valid, dropped = [], []
    for candidate in candidate_ids:
        oid = identity.to_object_id(candidate)
        if str(oid) in family:
            if oid not in valid:
                valid.append(oid)
        else:
            dropped.append(str(candidate))
    if dropped:
        logger.warning(
            "Share of document %s by user %s: ids not in family were dropped: %s",
            document["_id"], user_id, ", ".join(dropped),
        )

    updated = db[DOCUMENTS].find_one_and_update(
        {"_id": document["_id"]},
        {"$addToSet": {"shared_with": {"$each": valid}}, "$set": {"updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFoundError(f"Document not found with ID of {doc_id}")
    logger.info('Document "%s" (ID: %s) shared by user %s with %d family members', updated["file_name"], updated["_id"], user_id, len(valid))
    return updated


def open_download(db: Database, storage: LocalFileStorage, actor: Dict[str, Any], doc_id: str) -> Dict[str, Any]:
    """Return the document record once its bytes are confirmed present."""
    document = _load(db, doc_id, actor["_id"], "Download")
    access.ensure_can_view_document(actor["_id"], document, "download")

    if not storage.exists(document.get("file_path")):
        logger.error("Download failed: file missing for document %s at path %s", document["_id"], document.get("file_path"))
        raise IntegrityFault("File not found on the server")

    logger.info('Initiating download for document "%s" (ID: %s) by user %s', document["file_name"], document["_id"], actor["_id"])
    return document
