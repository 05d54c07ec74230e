"""Configuration for the acknowledgment tracking service, read from the environment."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/acknowledgments.db")

APP_ENV = os.getenv("APP_ENV", "production")  # development|production
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Statistics / detail view list sizes
DETAIL_DEFAULT_PAGE_SIZE = int(os.getenv("DETAIL_DEFAULT_PAGE_SIZE", "50"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "200"))

# Entra ID (Microsoft Graph) roster sync
AZURE_TENANT_ID = os.getenv("AZURE_TENANT_ID") or os.getenv("AUTH_TENANT_ID")
AZURE_APP_CLIENT_ID = os.getenv("AZURE_APP_CLIENT_ID") or os.getenv("AUTH_CLIENT_ID")
AZURE_APP_CLIENT_SECRET = os.getenv("AZURE_APP_CLIENT_SECRET") or os.getenv("AUTH_CLIENT_SECRET")
GRAPH_BASE_URL = os.getenv("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0")
GRAPH_MAX_RETRIES = int(os.getenv("GRAPH_MAX_RETRIES", "5"))
GRAPH_TIMEOUT_SEC = int(os.getenv("GRAPH_TIMEOUT_SEC", "30"))

# Server entry point
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))

VERSION = "1.0.0"


def is_development():
    """Check if the service runs in development mode (error details are exposed)."""
    return os.getenv("APP_ENV", APP_ENV).lower() == "development"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def app_credentials_configured():
    """Check if client-credentials settings for app-only Graph tokens are present."""
    return bool(AZURE_TENANT_ID and AZURE_APP_CLIENT_ID and AZURE_APP_CLIENT_SECRET)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if APP_ENV.lower() not in ["development", "production"]:
        issues.append(f"Invalid APP_ENV: {APP_ENV}")

    if MAX_PAGE_SIZE < 1:
        issues.append("MAX_PAGE_SIZE must be >= 1")

    if not 1 <= DETAIL_DEFAULT_PAGE_SIZE <= MAX_PAGE_SIZE:
        issues.append("DETAIL_DEFAULT_PAGE_SIZE must be between 1 and MAX_PAGE_SIZE")

    if GRAPH_MAX_RETRIES < 0:
        issues.append("GRAPH_MAX_RETRIES must be >= 0")

    return issues
