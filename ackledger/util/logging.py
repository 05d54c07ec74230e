"""
Structured operation logging for the acknowledgment service.
Identifiers are logged as-is; tokens, secrets and long free text never are.
"""

import logging
import os
from typing import Any, Dict, List

# Field names whose values are replaced before anything is logged
SENSITIVE_FIELDS = [
    'password', 'token', 'access_token', 'refresh_token', 'authorization',
    'secret', 'client_secret', 'api_key', 'private_key',
]


class StructuredLogger:
    """Structured logger for acknowledgment, statistics and roster-sync operations."""

    def __init__(self, name: str = "ackledger"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        if status in ("failed", "error"):
            self.logger.error(message)
        else:
            self.logger.info(message)

    def log_acknowledgment(self, user_id: str, document_id: str, document_version: str, created: bool):
        """Log a single acknowledgment outcome."""
        details = {
            "user_id": user_id,
            "document_id": document_id,
            "document_version": document_version,
        }
        self.log_operation("acknowledgment.record", "created" if created else "existing", details)

    def log_bulk_acknowledgment(self, user_id: str, requested: int, acknowledged: int, created: int, status: str = "success"):
        """Log the outcome of a bulk acknowledgment."""
        details = {
            "user_id": user_id,
            "requested": requested,
            "acknowledged": acknowledged,
            "created": created,
        }
        self.log_operation("acknowledgment.bulk", status, details)

    def log_stats_query(self, caller: str, documents: int, roster_size: int, document_id: str = None):
        """Log a completion statistics query."""
        details = {"caller": caller, "documents": documents, "roster_size": roster_size}
        if document_id:
            details["document_id"] = document_id
        self.log_operation("acknowledgment.stats", "success", details)

    def log_roster_sync(self, group_id: str, synced: int, removed: int, status: str = "success", details: Dict[str, Any] = None):
        """Log a roster sync run."""
        log_details = {"group_id": group_id, "synced": synced, "removed": removed}
        if details:
            log_details.update(details)
        self.log_operation("roster.sync", status, log_details)

    def log_request_error(self, operation: str, error: BaseException, context: Dict[str, Any] = None):
        """Log an unexpected failure with enough context to diagnose it."""
        log_details = dict(context or {})
        log_details["error_type"] = type(error).__name__
        log_details["error"] = str(error)[:200]
        self.log_operation(operation, "failed", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def _is_sensitive(field: str, sensitive_fields: List[str]) -> bool:
    lowered = field.lower()
    return any(marker in lowered for marker in sensitive_fields)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or not _is_sensitive(str(k), sensitive_fields):
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:200] + "..." if len(payload) > 200 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload


# Global logger instance
logger = StructuredLogger()
