"""
Access decisions for documents and profiles.

Ownership and family membership are the only two sources of permission:

- a document is visible to its owner and to every identity in its shared_with
  set; owner access never depends on that set,
- only the owner may change, delete or share a document,
- a profile is visible to its holder and to their family members.

The ``can_*`` functions answer the question; the ``ensure_*`` functions raise
``AuthorizationError`` when the answer is no.
"""

import logging
from typing import Any, Dict, Iterable

from .errors import AuthorizationError

logger = logging.getLogger(__name__)


def _same(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def _contains(ids: Iterable[Any], target: Any) -> bool:
    return any(_same(member, target) for member in ids or ())


def can_view_document(actor_id: Any, doc: Dict[str, Any]) -> bool:
    return _same(actor_id, doc.get("owner_id")) or _contains(doc.get("shared_with"), actor_id)


def can_mutate_document(actor_id: Any, doc: Dict[str, Any]) -> bool:
    return _same(actor_id, doc.get("owner_id"))


def can_view_profile(actor: Dict[str, Any], target_id: Any) -> bool:
    return _same(actor.get("_id"), target_id) or _contains(actor.get("family_members"), target_id)


def ensure_can_view_document(actor_id: Any, doc: Dict[str, Any], action: str = "access"):
    if not can_view_document(actor_id, doc):
        logger.warning("Access denied to document %s for user %s (not owner or shared with)", doc.get("_id"), actor_id)
        raise AuthorizationError(f"Not authorized to {action} this document")


def ensure_can_mutate_document(actor_id: Any, doc: Dict[str, Any], action: str = "update"):
    if not can_mutate_document(actor_id, doc):
        logger.warning("%s access denied to document %s for user %s (not owner)", action.capitalize(), doc.get("_id"), actor_id)
        raise AuthorizationError(f"Not authorized to {action} this document")


def ensure_can_view_profile(actor: Dict[str, Any], target_id: Any):
    if not can_view_profile(actor, target_id):
        logger.warning("Access denied to user profile %s for user %s (not self or family member)", target_id, actor.get("_id"))
        raise AuthorizationError("Not authorized to view this user profile")
