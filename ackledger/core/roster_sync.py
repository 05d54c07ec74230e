"""
Staff roster sync from Microsoft Entra ID (Microsoft Graph).

Reads the members of the configured all-staff group and replaces the local
roster snapshot with them. The acknowledgment core only ever reads the
snapshot; this module is the only writer.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import requests

from . import config, dao
from .db import Database
from .errors import RosterSyncError
from .schema import StaffRosterEntry
from ..util.logging import logger

USER_FIELDS = "id,mail,userPrincipalName,displayName,givenName,surname"
GRAPH_USER_TYPE = "#microsoft.graph.user"
BASE_RETRY_DELAY_SEC = 1.0


@dataclass
class GroupInfo:
    id: str
    display_name: str


class GraphClient:
    """Minimal Microsoft Graph reader for groups and their user members."""

    def __init__(self, access_token: str, session: Optional[requests.Session] = None,
                 base_url: str = None, max_retries: int = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.access_token = access_token
        self.session = session or requests.Session()
        self.base_url = (base_url or config.GRAPH_BASE_URL).rstrip("/")
        self.max_retries = config.GRAPH_MAX_RETRIES if max_retries is None else max_retries
        self.sleep = sleep

    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith("http"):
            return path_or_url
        return f"{self.base_url}{path_or_url}"

    def _get(self, path_or_url: str, params: Dict[str, str] = None) -> requests.Response:
        """GET with retry on throttling (HTTP 429)."""
        attempt = 0
        while True:
            response = self.session.get(
                self._url(path_or_url),
                headers={"Authorization": f"Bearer {self.access_token}"},
                params=params,
                timeout=config.GRAPH_TIMEOUT_SEC,
            )
            if response.status_code != 429:
                return response

            attempt += 1
            if attempt > self.max_retries:
                raise RosterSyncError("Too many retry attempts for throttled request")

            retry_after = response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                delay = float(retry_after)
            else:
                delay = BASE_RETRY_DELAY_SEC * (2 ** attempt)
            logger.warning(f"Graph throttled request, retrying after {delay}s (attempt {attempt}/{self.max_retries})")
            self.sleep(delay)

    def get_group(self, group_id: str) -> Optional[GroupInfo]:
        """Group id and display name, or None when the group does not exist."""
        response = self._get(f"/groups/{group_id}")
        if response.status_code == 404:
            return None
        if response.status_code == 403:
            raise RosterSyncError(
                "Access denied to group. Token may not have Group.Read.All permission."
            )
        response.raise_for_status()

        group = response.json()
        return GroupInfo(
            id=group["id"],
            display_name=group.get("displayName") or group.get("mailNickname") or group_id,
        )

    def _fill_user_details(self, member: Dict) -> Dict:
        response = self._get(f"/users/{member['id']}", params={"$select": USER_FIELDS})
        if response.status_code != 200:
            return member
        details = response.json()
        filled = dict(member)
        filled["mail"] = member.get("mail") or details.get("mail")
        filled["userPrincipalName"] = member.get("userPrincipalName") or details.get("userPrincipalName")
        if not member.get("displayName"):
            full_name = " ".join(p for p in (details.get("givenName"), details.get("surname")) if p).strip()
            filled["displayName"] = details.get("displayName") or full_name or None
        return filled

    def _to_roster_entry(self, member: Dict) -> Optional[StaffRosterEntry]:
        odata_type = member.get("@odata.type")
        if not member.get("id") or (odata_type is not None and odata_type != GRAPH_USER_TYPE):
            return None

        if not (member.get("mail") or member.get("userPrincipalName")) or not member.get("displayName"):
            member = self._fill_user_details(member)

        email = member.get("mail") or member.get("userPrincipalName")
        if not email:
            return None
        return StaffRosterEntry(
            external_id=member["id"],
            email=email,
            display_name=member.get("displayName") or email,
        )

    def _list_members(self, endpoint: str) -> List[StaffRosterEntry]:
        members: List[StaffRosterEntry] = []
        next_link: Optional[str] = None
        while True:
            if next_link:
                response = self._get(next_link)
            else:
                response = self._get(endpoint, params={"$select": USER_FIELDS})

            if response.status_code == 403:
                raise RosterSyncError(
                    "Access denied. Token does not have GroupMember.Read.All permission."
                )
            response.raise_for_status()

            page = response.json()
            for member in page.get("value", []):
                entry = self._to_roster_entry(member)
                if entry:
                    members.append(entry)

            next_link = page.get("@odata.nextLink")
            if not next_link:
                return members

    def list_group_members(self, group_id: str) -> List[StaffRosterEntry]:
        """All user members of a group, trying direct then transitive membership."""
        endpoints = [f"/groups/{group_id}/members", f"/groups/{group_id}/transitiveMembers"]
        for position, endpoint in enumerate(endpoints):
            try:
                members = self._list_members(endpoint)
            except (RosterSyncError, requests.RequestException):
                if position == len(endpoints) - 1:
                    raise
                continue
            if members:
                return members

        logger.warning(f"No members found for group {group_id}; group may be empty or token lacks permissions")
        return []


def acquire_app_token(session: Optional[requests.Session] = None) -> Optional[str]:
    """App-only Graph token via the client-credentials grant, or None when not configured."""
    if not config.app_credentials_configured():
        return None

    session = session or requests.Session()
    response = session.post(
        f"https://login.microsoftonline.com/{config.AZURE_TENANT_ID}/oauth2/v2.0/token",
        data={
            "client_id": config.AZURE_APP_CLIENT_ID,
            "client_secret": config.AZURE_APP_CLIENT_SECRET,
            "scope": "https://graph.microsoft.com/.default",
            "grant_type": "client_credentials",
        },
        timeout=config.GRAPH_TIMEOUT_SEC,
    )
    if response.status_code != 200:
        logger.warning(f"App-only token request failed with HTTP {response.status_code}")
        return None
    return response.json().get("access_token")


def sync_roster(db: Database, group_id: str, delegated_token: Optional[str] = None,
                client_factory: Callable[[str], GraphClient] = GraphClient,
                token_provider: Callable[[], Optional[str]] = acquire_app_token) -> int:
    """Replace the roster snapshot with the group's current members.

    Prefers an app-only token; a delegated token is the fallback. Returns the
    number of members synced. A read that yields no members raises
    RosterSyncError and leaves the snapshot and its sync stamp unchanged.
    """
    token = token_provider()
    if not token:
        if not delegated_token:
            raise RosterSyncError(
                "No access token available for syncing the staff roster. Configure "
                "AZURE_TENANT_ID, AZURE_APP_CLIENT_ID and AZURE_APP_CLIENT_SECRET."
            )
        logger.warning("Using delegated token (app-only token unavailable)")
        token = delegated_token

    client = client_factory(token)
    try:
        if client.get_group(group_id) is None:
            raise RosterSyncError(f"Group {group_id} not found or not accessible")

        members = client.list_group_members(group_id)
    except requests.RequestException as e:
        logger.log_roster_sync(group_id, 0, 0, status="failed", details={"error": str(e)})
        raise RosterSyncError(f"Failed to read group members: {e}") from e

    # An empty read is indistinguishable from missing permissions; keep the last snapshot
    if not members:
        logger.log_roster_sync(group_id, 0, 0, status="failed",
                               details={"error": "no members with an email address"})
        raise RosterSyncError(
            f"No members with an email address found in group {group_id}; roster left unchanged"
        )

    synced, removed = dao.replace_roster(db, members, group_id=group_id)
    logger.log_roster_sync(group_id, synced, removed)
    return synced
