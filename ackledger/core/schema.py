"""Domain records for documents, users, acknowledgments and the staff roster."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    STAFF = "STAFF"
    CONTRIBUTOR = "CONTRIBUTOR"


class DocumentStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    SUPERSEDED = "SUPERSEDED"


# Roles allowed to read completion statistics
STATS_ROLES = (UserRole.ADMIN, UserRole.EDITOR)

# Local roles that count as staff when matching roster entries
STAFF_EQUIVALENT_ROLES = (UserRole.STAFF, UserRole.EDITOR, UserRole.ADMIN, UserRole.CONTRIBUTOR)


@dataclass
class OwnerSummary:
    id: str
    display_name: str
    email: str


@dataclass
class User:
    id: str
    email: str
    display_name: str
    role: UserRole
    external_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Document:
    id: str
    title: str
    version: str
    status: DocumentStatus
    requires_acknowledgement: bool
    owner_user_id: str
    created_at: datetime
    updated_at: datetime
    last_changed_date: Optional[datetime] = None
    owner: Optional[OwnerSummary] = None

    @property
    def required_since(self) -> datetime:
        """When acknowledgment of the current version became due."""
        return self.last_changed_date or self.updated_at or self.created_at


@dataclass
class AcknowledgmentRecord:
    id: str
    user_id: str
    document_id: str
    document_version: str
    acknowledged_at: datetime


@dataclass
class StaffRosterEntry:
    external_id: str
    email: str
    display_name: str
    last_synced_at: Optional[datetime] = None


@dataclass
class RosterConfig:
    id: str
    group_id: str
    group_name: str
    created_at: datetime
    updated_at: datetime
    last_synced_at: Optional[datetime] = None


@dataclass
class BulkResult:
    """Outcome of a bulk acknowledgment: every record touched, plus how many were new."""
    records: List[AcknowledgmentRecord]
    created_count: int

    @property
    def acknowledged(self) -> int:
        return len({record.id for record in self.records})
