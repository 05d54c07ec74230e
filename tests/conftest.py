"""Shared fixtures: a fresh SQLite database per test and small seeding helpers."""

import uuid
from datetime import datetime, timezone

import pytest

from ackledger.core import dao
from ackledger.core.db import Database
from ackledger.core.schema import DocumentStatus, StaffRosterEntry, UserRole


@pytest.fixture
def db(tmp_path):
    """Connected database in a temporary directory."""
    database = Database(str(tmp_path / "data" / "acknowledgments.db")).connect()
    yield database
    database.close()


@pytest.fixture
def admin(db):
    return dao.save_user(db, "admin@example.com", "Ada Admin", UserRole.ADMIN, external_id="ext-admin")


@pytest.fixture
def staff(db):
    return dao.save_user(db, "staff@example.com", "Sam Staff", UserRole.STAFF, external_id="ext-staff")


@pytest.fixture
def make_document(db, admin):
    """Factory for catalog documents owned by the admin user."""
    counter = {"n": 0}

    def _make(version="1.0", status=DocumentStatus.APPROVED, requires_acknowledgement=True,
              document_id=None, title=None, last_changed_date=None):
        counter["n"] += 1
        # Distinct creation times keep catalog ordering deterministic
        created_at = datetime(2024, 1, 1, 0, 0, counter["n"], tzinfo=timezone.utc)
        return dao.save_document(
            db,
            title=title or f"Policy {counter['n']}",
            version=version,
            owner_user_id=admin.id,
            status=status,
            requires_acknowledgement=requires_acknowledgement,
            document_id=document_id or str(uuid.uuid4()),
            last_changed_date=last_changed_date,
            created_at=created_at,
            updated_at=created_at,
        )

    return _make


@pytest.fixture
def roster(db):
    """Replace the roster snapshot with (external_id, email, display_name) tuples."""
    def _roster(*entries):
        members = [StaffRosterEntry(external_id=e, email=m, display_name=n) for e, m, n in entries]
        dao.replace_roster(db, members)
        return members

    return _roster
