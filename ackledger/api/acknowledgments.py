"""
Acknowledgments API: pending documents, recording, completion statistics and
the staff roster sync surface.
"""

from contextlib import contextmanager
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from ..core import dao
from ..core.db import Database
from ..core.errors import AcknowledgmentError, InternalError, InvalidInput, NotFound, Unauthenticated
from ..core.pending import get_pending_documents
from ..core.recorder import acknowledge, acknowledge_bulk
from ..core.roster_sync import GraphClient, acquire_app_token, sync_roster
from ..core.schema import STATS_ROLES, UserRole
from ..core.stats import get_document_detail, get_stats, require_role
from ..util.logging import logger
from .schemas import (
    AcknowledgeRequest,
    AcknowledgmentResponse,
    BulkAcknowledgeRequest,
    BulkAcknowledgeResponse,
    DocumentDetailResponse,
    ErrorResponse,
    PendingDocumentResponse,
    RosterConfigRequest,
    RosterConfigResponse,
    StatsResponse,
    SyncResponse,
    ValidationErrorResponse,
)

router = APIRouter(
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    }
)


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_caller_email(x_user_email: Optional[str] = Header(None, alias="X-User-Email")) -> str:
    """Caller identity as set by the upstream session middleware."""
    if not x_user_email or not x_user_email.strip():
        raise Unauthenticated("Unauthorized")
    return x_user_email.strip()


def get_graph_client_factory() -> Callable[[str], GraphClient]:
    return GraphClient


def get_app_token_provider() -> Callable[[], Optional[str]]:
    return acquire_app_token


@contextmanager
def failure_message(message: str, operation: str, **context):
    """Turn unexpected failures into an InternalError carrying ``message``.

    Client errors (status < 500) pass through unchanged.
    """
    try:
        yield
    except AcknowledgmentError as e:
        if e.status_code < 500:
            raise
        logger.log_request_error(operation, e, context)
        raise InternalError(message, cause=e) from e
    except Exception as e:
        logger.log_request_error(operation, e, context)
        raise InternalError(message, cause=e) from e


@router.get("/pending", response_model=List[PendingDocumentResponse])
def pending_endpoint(db: Database = Depends(get_database), email: str = Depends(get_caller_email)):
    """Documents the caller still has to acknowledge at their current version."""
    with failure_message("Failed to fetch pending acknowledgments", "acknowledgment.pending", caller=email):
        documents = get_pending_documents(db, email)
    return [PendingDocumentResponse.model_validate(doc) for doc in documents]


@router.post("/bulk", response_model=BulkAcknowledgeResponse)
def bulk_acknowledge_endpoint(request: Optional[BulkAcknowledgeRequest] = None,
                              db: Database = Depends(get_database),
                              email: str = Depends(get_caller_email)):
    """Acknowledge the given documents, or everything pending when none are given."""
    document_ids = request.document_ids if request else None
    with failure_message("Failed to create acknowledgments", "acknowledgment.bulk",
                         caller=email, requested=len(document_ids or [])):
        result = acknowledge_bulk(db, email, document_ids)

    return BulkAcknowledgeResponse(
        acknowledged=result.acknowledged,
        acknowledgments=[AcknowledgmentResponse.model_validate(r) for r in result.records],
    )


@router.post("", response_model=AcknowledgmentResponse,
             responses={200: {"description": "Already acknowledged"}, 201: {"description": "Created"}})
def acknowledge_endpoint(request: AcknowledgeRequest, response: Response,
                         db: Database = Depends(get_database),
                         email: str = Depends(get_caller_email)):
    """Acknowledge the current version of one document."""
    with failure_message("Failed to create acknowledgment", "acknowledgment.record",
                         caller=email, document_id=request.document_id):
        record, created = acknowledge(db, email, request.document_id)

    response.status_code = 201 if created else 200
    return AcknowledgmentResponse.model_validate(record)


@router.get("/stats", response_model=StatsResponse)
def stats_endpoint(document_id: Optional[str] = Query(None, alias="documentId"),
                   limit: Optional[int] = Query(None),
                   include_users: bool = Query(True, alias="includeUsers"),
                   db: Database = Depends(get_database),
                   email: str = Depends(get_caller_email)):
    """Completion statistics per approved document against the staff roster."""
    with failure_message("Failed to fetch acknowledgment statistics", "acknowledgment.stats",
                         caller=email, document_id=document_id):
        stats = get_stats(db, email, document_id=document_id, limit=limit, include_users=include_users)
    return StatsResponse.model_validate(stats)


@router.get("/document/{document_id}", response_model=DocumentDetailResponse)
def document_detail_endpoint(document_id: str,
                             page: int = Query(1),
                             page_size: Optional[int] = Query(None, alias="pageSize"),
                             db: Database = Depends(get_database),
                             email: str = Depends(get_caller_email)):
    """Acknowledgment status of one document with paginated user lists."""
    with failure_message("Failed to fetch document acknowledgment details", "acknowledgment.detail",
                         caller=email, document_id=document_id):
        detail = get_document_detail(db, email, document_id, page=page, page_size=page_size)
    return DocumentDetailResponse.model_validate(detail)


# Staff roster sync

@router.get("/entra-config", response_model=RosterConfigResponse)
def get_roster_config_endpoint(db: Database = Depends(get_database),
                               email: str = Depends(get_caller_email)):
    with failure_message("Failed to fetch Entra ID configuration", "roster.config", caller=email):
        require_role(db, email, STATS_ROLES)
        config = dao.get_roster_config(db)

    if not config:
        return RosterConfigResponse()
    return RosterConfigResponse.model_validate(config)


@router.post("/entra-config", response_model=RosterConfigResponse)
def set_roster_config_endpoint(request: RosterConfigRequest,
                               x_graph_token: Optional[str] = Header(None, alias="X-Graph-Token"),
                               db: Database = Depends(get_database),
                               email: str = Depends(get_caller_email),
                               client_factory: Callable[[str], GraphClient] = Depends(get_graph_client_factory)):
    """Point the roster at an all-staff group after checking the group exists."""
    with failure_message("Failed to set Entra ID configuration", "roster.config",
                         caller=email, group_id=request.group_id):
        require_role(db, email, (UserRole.ADMIN,))

        if not x_graph_token:
            raise InvalidInput("X-Graph-Token header required for group validation")

        group = client_factory(x_graph_token).get_group(request.group_id)
        if group is None:
            raise NotFound("Group not found in Entra ID")

        config = dao.save_roster_config(db, group.id, group.display_name)

    logger.log_operation("roster.config", "success", {"group_id": config.group_id})
    return RosterConfigResponse.model_validate(config)


@router.post("/entra-sync", response_model=SyncResponse)
def sync_roster_endpoint(x_graph_token: Optional[str] = Header(None, alias="X-Graph-Token"),
                         db: Database = Depends(get_database),
                         email: str = Depends(get_caller_email),
                         client_factory: Callable[[str], GraphClient] = Depends(get_graph_client_factory),
                         token_provider: Callable[[], Optional[str]] = Depends(get_app_token_provider)):
    """Replace the roster snapshot with the configured group's members."""
    with failure_message("Failed to sync Entra ID users", "roster.sync", caller=email):
        require_role(db, email, (UserRole.ADMIN,))

        config = dao.get_roster_config(db)
        if not config:
            raise InvalidInput("No Entra ID group configured. Please configure a group first.")

        synced = sync_roster(db, config.group_id, delegated_token=x_graph_token,
                             client_factory=client_factory, token_provider=token_provider)
        config = dao.get_roster_config(db)

    return SyncResponse(synced=synced, last_synced_at=config.last_synced_at if config else None)
