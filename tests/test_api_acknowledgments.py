"""
HTTP surface of the acknowledgments API, exercised through FastAPI's TestClient.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from ackledger.api import acknowledgments
from ackledger.api.main import create_app
from ackledger.core import dao
from ackledger.core.roster_sync import GroupInfo
from ackledger.core.schema import DocumentStatus, StaffRosterEntry, UserRole

PREFIX = "/api/acknowledgments"


def _as(email):
    return {"X-User-Email": email}


@pytest.fixture
def app(db):
    return create_app(db)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["db_health"] is True


class TestIdentity:

    @pytest.mark.parametrize("path", ["/pending", "/stats", "/entra-config"])
    def test_missing_identity_is_unauthorized(self, client, path):
        response = client.get(PREFIX + path)

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_blank_identity_is_unauthorized(self, client):
        response = client.get(PREFIX + "/pending", headers=_as("  "))

        assert response.status_code == 401


class TestPendingEndpoint:

    def test_unacknowledged_document_listed(self, client, staff, make_document):
        make_document(document_id="doc-1", version="2.0")

        response = client.get(PREFIX + "/pending", headers=_as(staff.email))

        assert response.status_code == 200
        [document] = response.json()
        assert document["id"] == "doc-1"
        assert document["version"] == "2.0"
        assert document["status"] == "APPROVED"
        assert document["requiresAcknowledgement"] is True
        assert document["owner"]["displayName"] == "Ada Admin"

    def test_acknowledged_document_not_listed(self, client, db, staff, make_document):
        make_document(document_id="doc-1", version="2.0")
        dao.insert_acknowledgment(db, staff.id, "doc-1", "2.0")

        response = client.get(PREFIX + "/pending", headers=_as(staff.email))

        assert response.status_code == 200
        assert response.json() == []

    def test_unknown_user(self, client):
        response = client.get(PREFIX + "/pending", headers=_as("ghost@example.com"))

        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}

    def test_unexpected_failure_uses_generic_message(self, client, staff):
        with patch.object(acknowledgments, 'get_pending_documents', side_effect=RuntimeError("db exploded")), \
                patch('ackledger.api.main.is_development', return_value=False):
            response = client.get(PREFIX + "/pending", headers=_as(staff.email))

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch pending acknowledgments"}

    def test_development_mode_includes_details(self, client, staff):
        with patch.object(acknowledgments, 'get_pending_documents', side_effect=RuntimeError("db exploded")), \
                patch('ackledger.api.main.is_development', return_value=True):
            response = client.get(PREFIX + "/pending", headers=_as(staff.email))

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to fetch pending acknowledgments"
        assert "db exploded" in response.json()["details"]


class TestAcknowledgeEndpoint:

    def test_created_then_existing(self, client, staff, make_document):
        document = make_document()

        first = client.post(PREFIX, json={"documentId": document.id}, headers=_as(staff.email))
        second = client.post(PREFIX, json={"documentId": document.id}, headers=_as(staff.email))

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.json()["id"] == second.json()["id"]
        assert first.json()["documentVersion"] == document.version
        assert first.json()["userId"] == staff.id

    def test_draft_document_rejected(self, client, db, staff, admin):
        dao.save_document(db, "Draft policy", "1.0", admin.id, status=DocumentStatus.DRAFT,
                          requires_acknowledgement=True, document_id="550e8400-e29b-41d4-a716-446655440001")

        response = client.post(PREFIX, json={"documentId": "550e8400-e29b-41d4-a716-446655440001"},
                               headers=_as(staff.email))

        assert response.status_code == 400
        assert response.json() == {"error": "Document is not approved"}

    def test_document_not_requiring_acknowledgment(self, client, staff, make_document):
        document = make_document(requires_acknowledgement=False)

        response = client.post(PREFIX, json={"documentId": document.id}, headers=_as(staff.email))

        assert response.status_code == 400
        assert response.json() == {"error": "Document does not require acknowledgment"}

    def test_malformed_identifier(self, client, staff):
        response = client.post(PREFIX, json={"documentId": "doc-1"}, headers=_as(staff.email))

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "documentId"

    def test_missing_body_field(self, client, staff):
        response = client.post(PREFIX, json={}, headers=_as(staff.email))

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "documentId"

    def test_unknown_document(self, client, staff):
        response = client.post(PREFIX, json={"documentId": "550e8400-e29b-41d4-a716-446655440009"},
                               headers=_as(staff.email))

        assert response.status_code == 404
        assert response.json() == {"error": "Document not found"}


class TestBulkEndpoint:

    def test_acknowledges_everything_pending(self, client, staff, make_document):
        make_document()
        make_document()

        response = client.post(PREFIX + "/bulk", json={}, headers=_as(staff.email))

        assert response.status_code == 200
        assert response.json()["acknowledged"] == 2
        assert len(response.json()["acknowledgments"]) == 2

    def test_body_is_optional(self, client, staff, make_document):
        make_document()

        response = client.post(PREFIX + "/bulk", headers=_as(staff.email))

        assert response.status_code == 200
        assert response.json()["acknowledged"] == 1

    def test_partial_idempotence(self, client, staff, make_document):
        done = make_document()
        fresh = make_document()
        client.post(PREFIX, json={"documentId": done.id}, headers=_as(staff.email))

        response = client.post(PREFIX + "/bulk", json={"documentIds": [done.id, fresh.id]},
                               headers=_as(staff.email))

        assert response.status_code == 200
        assert response.json()["acknowledged"] == 2

    def test_invalid_ids(self, client, staff):
        response = client.post(PREFIX + "/bulk", json={"documentIds": ["not-a-uuid"]}, headers=_as(staff.email))

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"].startswith("documentIds")

    def test_unknown_user(self, client, make_document):
        make_document()

        response = client.post(PREFIX + "/bulk", json={}, headers=_as("ghost@example.com"))

        assert response.status_code == 404


class TestStatsEndpoint:

    def test_one_of_two_acknowledged(self, client, db, admin, staff, make_document, roster):
        document = make_document()
        roster(("ext-staff", "staff@example.com", "Sam Staff"), ("ext-other", "other@example.com", "Olive Other"))
        dao.insert_acknowledgment(db, staff.id, document.id, document.version)

        response = client.get(PREFIX + "/stats", headers=_as(admin.email))

        assert response.status_code == 200
        body = response.json()
        [completion] = body["documents"]
        assert completion["acknowledgedCount"] == 1
        assert completion["notAcknowledgedCount"] == 1
        assert completion["percentage"] == 50
        assert body["summary"]["totalUsers"] == 2
        assert completion["acknowledgedUsers"][0]["email"] == "staff@example.com"
        assert completion["notAcknowledgedUsers"][0]["userId"] is None

    def test_query_parameters(self, client, admin, make_document, roster):
        make_document()
        wanted = make_document()
        roster(("ext-1", "a@example.com", "A"))

        response = client.get(PREFIX + "/stats", params={"documentId": wanted.id, "includeUsers": "false"},
                              headers=_as(admin.email))

        [completion] = response.json()["documents"]
        assert completion["documentId"] == wanted.id
        assert completion["notAcknowledgedCount"] == 1
        assert completion["notAcknowledgedUsers"] == []

    def test_data_as_of_null_before_first_sync(self, client, admin):
        response = client.get(PREFIX + "/stats", headers=_as(admin.email))

        assert response.json()["dataAsOf"] is None
        assert response.json()["summary"]["averageAcknowledgmentRate"] == 0

    def test_staff_forbidden(self, client, staff):
        response = client.get(PREFIX + "/stats", headers=_as(staff.email))

        assert response.status_code == 403
        assert response.json() == {"error": "Insufficient permissions"}

    def test_invalid_limit(self, client, admin):
        response = client.get(PREFIX + "/stats", params={"limit": "many"}, headers=_as(admin.email))

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "limit"

    def test_zero_limit_returns_every_document(self, client, admin, make_document):
        for _ in range(3):
            make_document()

        response = client.get(PREFIX + "/stats", params={"limit": 0}, headers=_as(admin.email))

        assert response.status_code == 200
        assert len(response.json()["documents"]) == 3


class TestDocumentDetailEndpoint:

    def test_page_size_capped(self, client, admin, make_document, roster):
        document = make_document()
        roster(*[(f"ext-{i:03d}", f"user{i:03d}@example.com", f"User {i:03d}") for i in range(250)])

        response = client.get(f"{PREFIX}/document/{document.id}", params={"pageSize": 500},
                              headers=_as(admin.email))

        assert response.status_code == 200
        body = response.json()
        assert len(body["notAcknowledgedUsers"]) == 200
        assert body["pagination"] == {"page": 1, "pageSize": 200, "total": 250}
        assert body["document"]["totalUsers"] == 250

    def test_missing_document(self, client, admin):
        response = client.get(f"{PREFIX}/document/550e8400-e29b-41d4-a716-446655440001", headers=_as(admin.email))

        assert response.status_code == 404
        assert response.json() == {"error": "Document not found"}


class FakeGraphClient:

    def __init__(self, group=GroupInfo(id="g1", display_name="All Staff"), members=()):
        self.group = group
        self.members = list(members)
        self.tokens = []

    def __call__(self, token):
        self.tokens.append(token)
        return self

    def get_group(self, group_id):
        return self.group

    def list_group_members(self, group_id):
        return self.members


class TestRosterEndpoints:

    @pytest.fixture
    def graph(self, app):
        fake = FakeGraphClient(members=[StaffRosterEntry("u1", "a@example.com", "Alice")])
        app.dependency_overrides[acknowledgments.get_graph_client_factory] = lambda: fake
        app.dependency_overrides[acknowledgments.get_app_token_provider] = lambda: (lambda: "app-token")
        yield fake
        app.dependency_overrides.clear()

    def test_unconfigured(self, client, admin):
        response = client.get(PREFIX + "/entra-config", headers=_as(admin.email))

        assert response.status_code == 200
        assert response.json() == {"groupId": None, "groupName": None, "lastSyncedAt": None}

    def test_configure_group(self, client, admin, graph):
        response = client.post(PREFIX + "/entra-config", json={"groupId": "g1"},
                               headers={**_as(admin.email), "X-Graph-Token": "user-token"})

        assert response.status_code == 200
        assert response.json()["groupName"] == "All Staff"
        assert graph.tokens == ["user-token"]

        current = client.get(PREFIX + "/entra-config", headers=_as(admin.email)).json()
        assert current["groupId"] == "g1"

    def test_configure_requires_graph_token(self, client, admin, graph):
        response = client.post(PREFIX + "/entra-config", json={"groupId": "g1"}, headers=_as(admin.email))

        assert response.status_code == 400

    def test_configure_unknown_group(self, client, admin, graph):
        graph.group = None

        response = client.post(PREFIX + "/entra-config", json={"groupId": "nope"},
                               headers={**_as(admin.email), "X-Graph-Token": "user-token"})

        assert response.status_code == 404
        assert response.json() == {"error": "Group not found in Entra ID"}

    def test_configure_admin_only(self, client, db, graph):
        dao.save_user(db, "editor@example.com", "Eddie Editor", UserRole.EDITOR)

        response = client.post(PREFIX + "/entra-config", json={"groupId": "g1"},
                               headers={**_as("editor@example.com"), "X-Graph-Token": "user-token"})

        assert response.status_code == 403

    def test_sync_without_configuration(self, client, admin, graph):
        response = client.post(PREFIX + "/entra-sync", headers=_as(admin.email))

        assert response.status_code == 400

    def test_sync(self, client, db, admin, graph):
        dao.save_roster_config(db, "g1", "All Staff")

        response = client.post(PREFIX + "/entra-sync", headers=_as(admin.email))

        assert response.status_code == 200
        assert response.json()["synced"] == 1
        assert response.json()["lastSyncedAt"] is not None
        assert [e.external_id for e in dao.list_roster(db)] == ["u1"]

    def test_empty_sync_keeps_roster(self, client, db, admin, graph):
        dao.save_roster_config(db, "g1", "All Staff")
        dao.replace_roster(db, [StaffRosterEntry("u7", "kept@example.com", "Kept")])
        graph.members = []

        response = client.post(PREFIX + "/entra-sync", headers=_as(admin.email))

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to sync Entra ID users"
        assert [e.external_id for e in dao.list_roster(db)] == ["u7"]
        assert dao.get_roster_config(db).last_synced_at is None
