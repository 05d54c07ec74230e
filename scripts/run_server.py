#!/usr/bin/env python3
"""
Run the acknowledgment API.
Owns the database lifecycle: connects before serving, closes on shutdown.
"""

import argparse
import sys
from pathlib import Path

# Add the parent directory to sys.path to import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn

from ackledger.api.main import create_app
from ackledger.core.config import API_HOST, API_PORT, DB_PATH, LOG_LEVEL, validate_config
from ackledger.core.db import Database
from ackledger.util.logging import logger


def main():
    parser = argparse.ArgumentParser(description='Serve the document acknowledgment API')
    parser.add_argument('--host', default=API_HOST, help=f'Interface to bind (default: {API_HOST})')
    parser.add_argument('--port', type=int, default=API_PORT, help=f'Port to listen on (default: {API_PORT})')
    parser.add_argument('--db-path', default=DB_PATH, help=f'SQLite database file (default: {DB_PATH})')
    args = parser.parse_args()

    issues = validate_config()
    if issues:
        for issue in issues:
            logger.error(f"Configuration issue: {issue}")
        return 1

    database = Database(args.db_path).connect()
    try:
        uvicorn.run(create_app(database), host=args.host, port=args.port, log_level=LOG_LEVEL.lower())
    finally:
        database.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
