"""
Data access for users, documents, acknowledgments and the staff roster.
Every function takes the storage handle explicitly; nothing here holds state.
"""

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from .db import Database
from .schema import (
    AcknowledgmentRecord,
    Document,
    DocumentStatus,
    OwnerSummary,
    RosterConfig,
    StaffRosterEntry,
    User,
    UserRole,
)


class DuplicateAcknowledgment(Exception):
    """The (user, document, version) triple already has a record."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def _from_db(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        display_name=row["display_name"],
        role=UserRole(row["role"]),
        external_id=row["external_id"],
        created_at=_from_db(row["created_at"]),
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    owner = None
    if "owner_display_name" in row.keys() and row["owner_display_name"] is not None:
        owner = OwnerSummary(
            id=row["owner_user_id"],
            display_name=row["owner_display_name"],
            email=row["owner_email"],
        )
    return Document(
        id=row["id"],
        title=row["title"],
        version=row["version"],
        status=DocumentStatus(row["status"]),
        requires_acknowledgement=bool(row["requires_acknowledgement"]),
        owner_user_id=row["owner_user_id"],
        last_changed_date=_from_db(row["last_changed_date"]),
        created_at=_from_db(row["created_at"]),
        updated_at=_from_db(row["updated_at"]),
        owner=owner,
    )


def _row_to_acknowledgment(row: sqlite3.Row) -> AcknowledgmentRecord:
    return AcknowledgmentRecord(
        id=row["id"],
        user_id=row["user_id"],
        document_id=row["document_id"],
        document_version=row["document_version"],
        acknowledged_at=_from_db(row["acknowledged_at"]),
    )


def _row_to_roster_entry(row: sqlite3.Row) -> StaffRosterEntry:
    return StaffRosterEntry(
        external_id=row["external_id"],
        email=row["email"],
        display_name=row["display_name"],
        last_synced_at=_from_db(row["last_synced_at"]),
    )


def _row_to_roster_config(row: sqlite3.Row) -> RosterConfig:
    return RosterConfig(
        id=row["id"],
        group_id=row["group_id"],
        group_name=row["group_name"],
        last_synced_at=_from_db(row["last_synced_at"]),
        created_at=_from_db(row["created_at"]),
        updated_at=_from_db(row["updated_at"]),
    )


_DOCUMENT_SELECT = """
    SELECT d.*, u.display_name AS owner_display_name, u.email AS owner_email
    FROM documents d
    LEFT JOIN users u ON u.id = d.owner_user_id
"""


# Users

def get_user_by_email(db: Database, email: str) -> Optional[User]:
    """Get a local user by email (case-insensitive)."""
    if not email or not email.strip():
        return None

    with db.connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE lower(email) = lower(?)",
            (email.strip(),)
        ).fetchone()
    return _row_to_user(row) if row else None


def list_users_by_roles(db: Database, roles: Sequence[UserRole]) -> List[User]:
    placeholders = ",".join("?" for _ in roles)
    with db.connection() as conn:
        rows = conn.execute(
            f"SELECT * FROM users WHERE role IN ({placeholders}) ORDER BY created_at",
            [role.value for role in roles]
        ).fetchall()
    return [_row_to_user(row) for row in rows]


def save_user(db: Database, email: str, display_name: str, role: UserRole = UserRole.STAFF,
              external_id: Optional[str] = None, user_id: Optional[str] = None) -> User:
    """Insert or update a local user keyed by email."""
    user = User(
        id=user_id or str(uuid.uuid4()),
        email=email,
        display_name=display_name,
        role=role,
        external_id=external_id,
        created_at=utcnow(),
    )
    with db.connection() as conn:
        conn.execute(
            """
            INSERT INTO users (id, email, display_name, external_id, role, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET
                display_name = excluded.display_name,
                external_id = excluded.external_id,
                role = excluded.role
            """,
            (user.id, user.email, user.display_name, user.external_id, user.role.value, _to_db(user.created_at))
        )
    return get_user_by_email(db, email)


# Documents

def get_document(db: Database, document_id: str) -> Optional[Document]:
    with db.connection() as conn:
        row = conn.execute(_DOCUMENT_SELECT + " WHERE d.id = ?", (document_id,)).fetchone()
    return _row_to_document(row) if row else None


def list_documents(db: Database, status: Optional[DocumentStatus] = None,
                   requires_acknowledgement: Optional[bool] = None,
                   document_ids: Optional[Iterable[str]] = None) -> List[Document]:
    """List documents with optional status, acknowledgment-flag and id filters."""
    clauses = []
    params: list = []

    if status is not None:
        clauses.append("d.status = ?")
        params.append(status.value)
    if requires_acknowledgement is not None:
        clauses.append("d.requires_acknowledgement = ?")
        params.append(1 if requires_acknowledgement else 0)
    if document_ids is not None:
        ids = list(document_ids)
        if not ids:
            return []
        clauses.append(f"d.id IN ({','.join('?' for _ in ids)})")
        params.extend(ids)

    query = _DOCUMENT_SELECT
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY d.created_at, d.id"

    with db.connection() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_document(row) for row in rows]


def list_acknowledgeable_documents(db: Database, document_ids: Optional[Iterable[str]] = None) -> List[Document]:
    """Approved documents that require acknowledgment."""
    return list_documents(db, status=DocumentStatus.APPROVED, requires_acknowledgement=True,
                          document_ids=document_ids)


def save_document(db: Database, title: str, version: str, owner_user_id: str,
                  status: DocumentStatus = DocumentStatus.DRAFT,
                  requires_acknowledgement: bool = False,
                  document_id: Optional[str] = None,
                  last_changed_date: Optional[datetime] = None,
                  created_at: Optional[datetime] = None,
                  updated_at: Optional[datetime] = None) -> Document:
    """Insert or replace a catalog document.

    The document catalog is owned by the document-management side; this writer
    exists for that collaborator and for fixtures.
    """
    now = utcnow()
    document_id = document_id or str(uuid.uuid4())
    with db.connection() as conn:
        conn.execute(
            """
            INSERT INTO documents (id, title, version, status, requires_acknowledgement, owner_user_id,
                                   last_changed_date, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                version = excluded.version,
                status = excluded.status,
                requires_acknowledgement = excluded.requires_acknowledgement,
                owner_user_id = excluded.owner_user_id,
                last_changed_date = excluded.last_changed_date,
                updated_at = excluded.updated_at
            """,
            (
                document_id, title, version, status.value, 1 if requires_acknowledgement else 0,
                owner_user_id, _to_db(last_changed_date), _to_db(created_at or now), _to_db(updated_at or now),
            )
        )
    return get_document(db, document_id)


# Acknowledgments

def list_user_acknowledgments(db: Database, user_id: str) -> List[AcknowledgmentRecord]:
    with db.connection() as conn:
        rows = conn.execute(
            "SELECT * FROM acknowledgments WHERE user_id = ?",
            (user_id,)
        ).fetchall()
    return [_row_to_acknowledgment(row) for row in rows]


def list_document_acknowledgments(db: Database, document_id: str, document_version: str) -> List[AcknowledgmentRecord]:
    """Acknowledgments of one document at one version."""
    with db.connection() as conn:
        rows = conn.execute(
            """
            SELECT * FROM acknowledgments
            WHERE document_id = ? AND document_version = ?
            ORDER BY acknowledged_at
            """,
            (document_id, document_version)
        ).fetchall()
    return [_row_to_acknowledgment(row) for row in rows]


def get_acknowledgment(db: Database, user_id: str, document_id: str, document_version: str) -> Optional[AcknowledgmentRecord]:
    with db.connection() as conn:
        row = conn.execute(
            """
            SELECT * FROM acknowledgments
            WHERE user_id = ? AND document_id = ? AND document_version = ?
            """,
            (user_id, document_id, document_version)
        ).fetchone()
    return _row_to_acknowledgment(row) if row else None


def insert_acknowledgment(db: Database, user_id: str, document_id: str, document_version: str,
                          acknowledged_at: Optional[datetime] = None) -> AcknowledgmentRecord:
    """Insert a new acknowledgment in its own transaction.

    Raises DuplicateAcknowledgment when the unique (user, document, version)
    constraint rejects the row.
    """
    record = AcknowledgmentRecord(
        id=str(uuid.uuid4()),
        user_id=user_id,
        document_id=document_id,
        document_version=document_version,
        acknowledged_at=acknowledged_at or utcnow(),
    )
    try:
        with db.connection() as conn:
            conn.execute(
                """
                INSERT INTO acknowledgments (id, user_id, document_id, document_version, acknowledged_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (record.id, record.user_id, record.document_id, record.document_version,
                 _to_db(record.acknowledged_at))
            )
    except sqlite3.IntegrityError as e:
        if "UNIQUE" in str(e).upper():
            raise DuplicateAcknowledgment(f"{user_id}/{document_id}/{document_version}") from e
        raise
    return record


# Staff roster

def list_roster(db: Database) -> List[StaffRosterEntry]:
    with db.connection() as conn:
        rows = conn.execute("SELECT * FROM staff_roster ORDER BY display_name, email").fetchall()
    return [_row_to_roster_entry(row) for row in rows]


def replace_roster(db: Database, members: Iterable[StaffRosterEntry], group_id: Optional[str] = None,
                   synced_at: Optional[datetime] = None) -> Tuple[int, int]:
    """Upsert the given members and drop everyone else from the snapshot.

    Returns (synced, removed). Runs in one transaction so readers never see a
    half-replaced roster. The roster config is stamped with ``synced_at`` only
    when ``group_id`` is the configured group.
    """
    synced_at = synced_at or utcnow()
    members = list(members)
    external_ids = [m.external_id for m in members]

    with db.connection() as conn:
        for member in members:
            conn.execute(
                """
                INSERT INTO staff_roster (id, external_id, email, display_name, last_synced_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(external_id) DO UPDATE SET
                    email = excluded.email,
                    display_name = excluded.display_name,
                    last_synced_at = excluded.last_synced_at
                """,
                (str(uuid.uuid4()), member.external_id, member.email, member.display_name, _to_db(synced_at))
            )

        if external_ids:
            placeholders = ",".join("?" for _ in external_ids)
            cursor = conn.execute(
                f"DELETE FROM staff_roster WHERE external_id NOT IN ({placeholders})",
                external_ids
            )
        else:
            cursor = conn.execute("DELETE FROM staff_roster")
        removed = cursor.rowcount

        if group_id:
            conn.execute(
                "UPDATE roster_config SET last_synced_at = ?, updated_at = ? WHERE group_id = ?",
                (_to_db(synced_at), _to_db(synced_at), group_id)
            )

    return len(members), removed


def get_roster_config(db: Database) -> Optional[RosterConfig]:
    with db.connection() as conn:
        row = conn.execute("SELECT * FROM roster_config ORDER BY created_at LIMIT 1").fetchone()
    return _row_to_roster_config(row) if row else None


def save_roster_config(db: Database, group_id: str, group_name: str) -> RosterConfig:
    """Create or update the singleton roster group configuration."""
    now = utcnow()
    existing = get_roster_config(db)
    with db.connection() as conn:
        if existing:
            conn.execute(
                "UPDATE roster_config SET group_id = ?, group_name = ?, updated_at = ? WHERE id = ?",
                (group_id, group_name, _to_db(now), existing.id)
            )
        else:
            conn.execute(
                """
                INSERT INTO roster_config (id, group_id, group_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (str(uuid.uuid4()), group_id, group_name, _to_db(now), _to_db(now))
            )
    return get_roster_config(db)
