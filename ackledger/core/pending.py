"""
Pending-acknowledgment resolution.

A document is pending for a user when the user's most recent acknowledgment of
it (by acknowledgment time) is missing or names a different version than the
document's current one. Versions are compared for equality only.
"""

from typing import Dict, Iterable, List

from . import dao
from .db import Database
from .errors import NotFound
from .schema import AcknowledgmentRecord, Document, User


def latest_acknowledged_versions(records: Iterable[AcknowledgmentRecord]) -> Dict[str, str]:
    """Map document id -> version of the most recently made acknowledgment.

    Works on an already-fetched collection, so the result does not depend on
    the order the store returned rows in. Ties on timestamp keep the first seen.
    """
    latest: Dict[str, AcknowledgmentRecord] = {}
    for record in records:
        current = latest.get(record.document_id)
        if current is None or record.acknowledged_at > current.acknowledged_at:
            latest[record.document_id] = record
    return {document_id: record.document_version for document_id, record in latest.items()}


def is_pending(document: Document, latest_versions: Dict[str, str]) -> bool:
    acknowledged_version = latest_versions.get(document.id)
    return acknowledged_version is None or acknowledged_version != document.version


def resolve_user(db: Database, email: str) -> User:
    """Resolve the caller's identity to a local user, or raise NotFound."""
    user = dao.get_user_by_email(db, email)
    if not user:
        raise NotFound("User not found")
    return user


def pending_documents_for_user(db: Database, user: User) -> List[Document]:
    documents = dao.list_acknowledgeable_documents(db)
    latest_versions = latest_acknowledged_versions(dao.list_user_acknowledgments(db, user.id))
    return [doc for doc in documents if is_pending(doc, latest_versions)]


def get_pending_documents(db: Database, email: str) -> List[Document]:
    """Documents the user identified by ``email`` must acknowledge right now."""
    user = resolve_user(db, email)
    return pending_documents_for_user(db, user)
