"""
Acknowledgment recording, single and bulk.

Records are append-only and keyed by (user, document, version). The unique
index in the store is what guarantees one record per triple; a constraint
violation means another request won the race and the existing row is returned.
"""

import uuid
from typing import List, Optional, Sequence, Tuple

from . import dao
from .db import Database
from .errors import AcknowledgmentError, InternalError, InvalidInput, InvalidState, NotFound
from .pending import pending_documents_for_user, resolve_user
from .schema import AcknowledgmentRecord, BulkResult, Document, DocumentStatus, User
from ..util.logging import logger


def is_valid_identifier(value) -> bool:
    """Document identifiers are UUID strings."""
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def validate_document_ids(document_ids: Sequence) -> List[str]:
    invalid = [value for value in document_ids if not is_valid_identifier(value)]
    if invalid:
        raise InvalidInput(
            "Invalid document identifiers",
            details={"field": "documentIds", "invalid": [str(value) for value in invalid]}
        )
    return list(document_ids)


def record_acknowledgment(db: Database, user: User, document: Document) -> Tuple[AcknowledgmentRecord, bool]:
    """Return the record for (user, document, current version), creating it if needed.

    The second element is True only when this call created the record.
    """
    existing = dao.get_acknowledgment(db, user.id, document.id, document.version)
    if existing:
        return existing, False

    try:
        record = dao.insert_acknowledgment(db, user.id, document.id, document.version)
    except dao.DuplicateAcknowledgment:
        # Lost a race with a concurrent request for the same triple
        record = dao.get_acknowledgment(db, user.id, document.id, document.version)
        if record is None:
            raise
        return record, False

    return record, True


def acknowledge(db: Database, email: str, document_id: str) -> Tuple[AcknowledgmentRecord, bool]:
    """Acknowledge the current version of one document for the caller."""
    if not is_valid_identifier(document_id):
        raise InvalidInput("Invalid document identifier", details={"field": "documentId"})

    user = resolve_user(db, email)

    document = dao.get_document(db, document_id)
    if not document:
        raise NotFound("Document not found")

    if document.status != DocumentStatus.APPROVED:
        raise InvalidState("Document is not approved")

    if not document.requires_acknowledgement:
        raise InvalidState("Document does not require acknowledgment")

    record, created = record_acknowledgment(db, user, document)
    logger.log_acknowledgment(user.id, document.id, document.version, created)
    return record, created


def acknowledge_bulk(db: Database, email: str, document_ids: Optional[Sequence[str]] = None) -> BulkResult:
    """Acknowledge several documents at once.

    Without ids, every document currently pending for the caller is targeted.
    With ids, the targets are those ids restricted to approved documents that
    require acknowledgment; others are dropped silently. Each document commits
    on its own, so a failure stops the batch without undoing earlier records.
    """
    if document_ids:
        document_ids = validate_document_ids(document_ids)

    user = resolve_user(db, email)

    if document_ids:
        targets = dao.list_acknowledgeable_documents(db, document_ids=document_ids)
    else:
        targets = pending_documents_for_user(db, user)

    records: List[AcknowledgmentRecord] = []
    created_count = 0
    for document in targets:
        try:
            record, created = record_acknowledgment(db, user, document)
        except AcknowledgmentError:
            raise
        except Exception as e:
            logger.log_request_error("acknowledgment.bulk", e, {
                "user_id": user.id,
                "document_id": document.id,
                "completed": len(records),
                "remaining": len(targets) - len(records),
            })
            raise InternalError("Failed to create acknowledgments", cause=e) from e

        records.append(record)
        if created:
            created_count += 1

    result = BulkResult(records=records, created_count=created_count)
    logger.log_bulk_acknowledgment(user.id, len(targets), result.acknowledged, created_count)
    return result
