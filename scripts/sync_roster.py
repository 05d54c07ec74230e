#!/usr/bin/env python3
"""
Sync the staff roster from the configured Entra ID group.
Suitable for cron; exits non-zero when the sync fails.
"""

import argparse
import sys
from pathlib import Path

# Add the parent directory to sys.path to import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from ackledger.core import dao
from ackledger.core.config import DB_PATH
from ackledger.core.db import Database
from ackledger.core.errors import RosterSyncError
from ackledger.core.roster_sync import sync_roster
from ackledger.util.logging import logger


def main():
    parser = argparse.ArgumentParser(description='Sync the staff roster from Entra ID')
    parser.add_argument('--db-path', default=DB_PATH, help=f'SQLite database file (default: {DB_PATH})')
    parser.add_argument('--group-id', help='Group to sync (default: the configured all-staff group)')
    parser.add_argument('--token', help='Delegated Graph token, used only when no app-only token is available')
    args = parser.parse_args()

    database = Database(args.db_path).connect()
    try:
        group_id = args.group_id
        if not group_id:
            config = dao.get_roster_config(database)
            if not config:
                logger.error("No Entra ID group configured. Pass --group-id or configure a group first.")
                return 1
            group_id = config.group_id

        try:
            synced = sync_roster(database, group_id, delegated_token=args.token)
        except RosterSyncError as e:
            logger.error(f"Roster sync failed: {e}")
            return 1

        print(f"Synced {synced} staff members from group {group_id}")
        return 0
    finally:
        database.close()


if __name__ == '__main__':
    sys.exit(main())
