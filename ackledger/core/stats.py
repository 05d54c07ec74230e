"""
Completion statistics: reconcile the synced staff roster against recorded
acknowledgments, per document.

The roster is the denominator. Each roster entry resolves to at most one local
user, by external directory id first and lowercased email second, and counts as
acknowledged when that user holds a record for the document's current version.
Two roster entries may resolve to the same local user; each is counted on its own.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from . import dao
from .config import DETAIL_DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .db import Database
from .errors import NotFound, PermissionDenied, Unauthenticated
from .schema import (
    AcknowledgmentRecord,
    Document,
    DocumentStatus,
    STAFF_EQUIVALENT_ROLES,
    STATS_ROLES,
    StaffRosterEntry,
    User,
    UserRole,
)
from ..util.logging import logger

SECONDS_PER_DAY = 60 * 60 * 24


@dataclass
class AcknowledgedUser:
    user_id: str
    external_id: str
    email: str
    display_name: str
    acknowledged_at: datetime
    days_since_required: int


@dataclass
class NotAcknowledgedUser:
    user_id: Optional[str]
    external_id: str
    email: str
    display_name: str
    days_since_required: int


@dataclass
class DocumentCompletion:
    document_id: str
    document_title: str
    document_version: str
    requires_acknowledgement: bool
    last_changed_date: Optional[datetime]
    total_users: int
    acknowledged_count: int
    not_acknowledged_count: int
    percentage: float
    acknowledged_users: List[AcknowledgedUser] = field(default_factory=list)
    not_acknowledged_users: List[NotAcknowledgedUser] = field(default_factory=list)


@dataclass
class StatsSummary:
    total_documents: int
    total_users: int
    average_acknowledgment_rate: float


@dataclass
class CompletionStats:
    data_as_of: Optional[datetime]
    documents: List[DocumentCompletion]
    summary: StatsSummary


@dataclass
class Pagination:
    page: int
    page_size: int
    total: int


@dataclass
class DocumentDetail:
    data_as_of: Optional[datetime]
    document: DocumentCompletion
    acknowledged_users: List[AcknowledgedUser]
    not_acknowledged_users: List[NotAcknowledgedUser]
    pagination: Pagination


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


def whole_days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, floored (negative when end precedes start)."""
    return math.floor((end - start).total_seconds() / SECONDS_PER_DAY)


def completion_percentage(acknowledged: int, total: int) -> float:
    if total <= 0:
        return 0
    return round(acknowledged / total * 100, 2)


def require_role(db: Database, email: Optional[str], allowed: Sequence[UserRole] = STATS_ROLES) -> User:
    """Capability check run before any statistics query."""
    if not email or not email.strip():
        raise Unauthenticated("Unauthorized")

    user = dao.get_user_by_email(db, email)
    if not user:
        raise PermissionDenied("User not found")

    if user.role not in allowed:
        raise PermissionDenied("Insufficient permissions")

    return user


class RosterIndex:
    """Lookup from roster entries to local users."""

    def __init__(self, users: Iterable[User]):
        self.by_external_id: Dict[str, User] = {}
        self.by_email: Dict[str, User] = {}
        for user in users:
            if user.external_id:
                self.by_external_id.setdefault(user.external_id, user)
            if user.email:
                self.by_email.setdefault(user.email.lower(), user)

    def resolve(self, entry: StaffRosterEntry) -> Optional[User]:
        user = None
        if entry.external_id:
            user = self.by_external_id.get(entry.external_id)
        if user is None and entry.email:
            user = self.by_email.get(entry.email.lower())
        return user


def reconcile_document(document: Document, roster: List[StaffRosterEntry], index: RosterIndex,
                       acknowledgments: Iterable[AcknowledgmentRecord], now: datetime,
                       include_users: bool = True) -> DocumentCompletion:
    """Partition the roster into acknowledged / not acknowledged for one document."""
    required_since = document.required_since
    days_since_required = whole_days_between(required_since, now)

    current = {ack.user_id: ack for ack in acknowledgments if ack.document_version == document.version}

    acknowledged: List[AcknowledgedUser] = []
    not_acknowledged: List[NotAcknowledgedUser] = []
    for entry in roster:
        user = index.resolve(entry)
        ack = current.get(user.id) if user else None
        if ack:
            acknowledged.append(AcknowledgedUser(
                user_id=user.id,
                external_id=entry.external_id,
                email=entry.email,
                display_name=entry.display_name,
                acknowledged_at=ack.acknowledged_at,
                days_since_required=whole_days_between(required_since, ack.acknowledged_at),
            ))
        else:
            not_acknowledged.append(NotAcknowledgedUser(
                user_id=user.id if user else None,
                external_id=entry.external_id,
                email=entry.email,
                display_name=entry.display_name,
                days_since_required=days_since_required,
            ))

    total = len(roster)
    return DocumentCompletion(
        document_id=document.id,
        document_title=document.title,
        document_version=document.version,
        requires_acknowledgement=document.requires_acknowledgement,
        last_changed_date=document.last_changed_date,
        total_users=total,
        acknowledged_count=len(acknowledged),
        not_acknowledged_count=total - len(acknowledged),
        percentage=completion_percentage(len(acknowledged), total),
        acknowledged_users=acknowledged if include_users else [],
        not_acknowledged_users=not_acknowledged if include_users else [],
    )


def _data_as_of(db: Database) -> Optional[datetime]:
    config = dao.get_roster_config(db)
    return config.last_synced_at if config else None


def get_stats(db: Database, caller_email: Optional[str], document_id: Optional[str] = None,
              limit: Optional[int] = None, include_users: bool = True) -> CompletionStats:
    """Completion statistics for approved documents against the roster snapshot."""
    require_role(db, caller_email)

    data_as_of = _data_as_of(db)
    roster = dao.list_roster(db)
    index = RosterIndex(dao.list_users_by_roles(db, STAFF_EQUIVALENT_ROLES))

    if document_id:
        documents = dao.list_documents(db, status=DocumentStatus.APPROVED, document_ids=[document_id])
    else:
        documents = dao.list_documents(db, status=DocumentStatus.APPROVED)

    # zero or negative means unrestricted
    if limit is not None and limit > 0:
        documents = documents[:min(limit, MAX_PAGE_SIZE)]

    now = dao.utcnow()
    completions = [
        reconcile_document(
            doc, roster, index,
            dao.list_document_acknowledgments(db, doc.id, doc.version),
            now, include_users=include_users,
        )
        for doc in documents
    ]

    average = 0
    if completions:
        average = round(sum(c.percentage for c in completions) / len(completions), 2)

    logger.log_stats_query(caller_email, len(completions), len(roster), document_id)
    return CompletionStats(
        data_as_of=data_as_of,
        documents=completions,
        summary=StatsSummary(
            total_documents=len(completions),
            total_users=len(roster),
            average_acknowledgment_rate=average,
        ),
    )


def get_document_detail(db: Database, caller_email: Optional[str], document_id: str,
                        page: Optional[int] = 1, page_size: Optional[int] = None) -> DocumentDetail:
    """Acknowledgment status of one document with independently paginated user lists."""
    require_role(db, caller_email)

    page = max(page or 1, 1)
    page_size = clamp(page_size or DETAIL_DEFAULT_PAGE_SIZE, 1, MAX_PAGE_SIZE)

    document = dao.get_document(db, document_id)
    if not document:
        raise NotFound("Document not found")

    roster = dao.list_roster(db)
    index = RosterIndex(dao.list_users_by_roles(db, STAFF_EQUIVALENT_ROLES))
    completion = reconcile_document(
        document, roster, index,
        dao.list_document_acknowledgments(db, document.id, document.version),
        dao.utcnow(),
    )

    start = (page - 1) * page_size
    end = start + page_size
    acknowledged = completion.acknowledged_users
    not_acknowledged = completion.not_acknowledged_users

    logger.log_stats_query(caller_email, 1, len(roster), document.id)
    return DocumentDetail(
        data_as_of=_data_as_of(db),
        document=DocumentCompletion(
            document_id=completion.document_id,
            document_title=completion.document_title,
            document_version=completion.document_version,
            requires_acknowledgement=completion.requires_acknowledgement,
            last_changed_date=completion.last_changed_date,
            total_users=completion.total_users,
            acknowledged_count=completion.acknowledged_count,
            not_acknowledged_count=completion.not_acknowledged_count,
            percentage=completion.percentage,
        ),
        acknowledged_users=acknowledged[start:end],
        not_acknowledged_users=not_acknowledged[start:end],
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=max(len(acknowledged), len(not_acknowledged)),
        ),
    )
