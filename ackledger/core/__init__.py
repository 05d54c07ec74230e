"""
Acknowledgment core: pending resolution, recording, completion statistics and
the staff roster snapshot they are measured against.
"""

from .db import Database
from .errors import (
    AcknowledgmentError,
    InternalError,
    InvalidInput,
    InvalidState,
    NotFound,
    PermissionDenied,
    RosterSyncError,
    Unauthenticated,
)
from .pending import get_pending_documents, latest_acknowledged_versions
from .recorder import acknowledge, acknowledge_bulk
from .stats import get_document_detail, get_stats

__all__ = [
    'Database',
    'AcknowledgmentError',
    'InternalError',
    'InvalidInput',
    'InvalidState',
    'NotFound',
    'PermissionDenied',
    'RosterSyncError',
    'Unauthenticated',
    'get_pending_documents',
    'latest_acknowledged_versions',
    'acknowledge',
    'acknowledge_bulk',
    'get_document_detail',
    'get_stats',
]
