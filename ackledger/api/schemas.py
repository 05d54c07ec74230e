"""
Request and response models for the acknowledgments API.
Wire names are camelCase; Python attributes stay snake_case.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ..core.schema import DocumentStatus


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _must_be_uuid(value: str, field: str) -> str:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        raise ValueError(f'{field} must be a valid UUID')
    return value


# Requests

class AcknowledgeRequest(ApiModel):
    document_id: str

    @field_validator('document_id')
    @classmethod
    def document_id_must_be_uuid(cls, v):
        return _must_be_uuid(v, 'documentId')


class BulkAcknowledgeRequest(ApiModel):
    document_ids: Optional[List[str]] = None

    @field_validator('document_ids')
    @classmethod
    def document_ids_must_be_uuids(cls, v):
        if v is None:
            return v
        return [_must_be_uuid(item, 'documentIds') for item in v]


class RosterConfigRequest(ApiModel):
    group_id: str

    @field_validator('group_id')
    @classmethod
    def group_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('groupId cannot be empty')
        return v.strip()


# Acknowledgments

class OwnerResponse(ApiModel):
    id: str
    display_name: str
    email: str


class PendingDocumentResponse(ApiModel):
    id: str
    title: str
    version: str
    status: DocumentStatus
    requires_acknowledgement: bool
    owner_user_id: str
    last_changed_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    owner: Optional[OwnerResponse] = None


class AcknowledgmentResponse(ApiModel):
    id: str
    user_id: str
    document_id: str
    document_version: str
    acknowledged_at: datetime


class BulkAcknowledgeResponse(ApiModel):
    acknowledged: int
    acknowledgments: List[AcknowledgmentResponse]


# Statistics

class AcknowledgedUserResponse(ApiModel):
    user_id: str
    external_id: str
    email: str
    display_name: str
    acknowledged_at: datetime
    days_since_required: int


class NotAcknowledgedUserResponse(ApiModel):
    user_id: Optional[str] = None
    external_id: str
    email: str
    display_name: str
    days_since_required: int


class DocumentCountsResponse(ApiModel):
    document_id: str
    document_title: str
    document_version: str
    requires_acknowledgement: bool
    last_changed_date: Optional[datetime] = None
    total_users: int
    acknowledged_count: int
    not_acknowledged_count: int
    percentage: float


class DocumentCompletionResponse(DocumentCountsResponse):
    acknowledged_users: List[AcknowledgedUserResponse] = []
    not_acknowledged_users: List[NotAcknowledgedUserResponse] = []


class StatsSummaryResponse(ApiModel):
    total_documents: int
    total_users: int
    average_acknowledgment_rate: float


class StatsResponse(ApiModel):
    data_as_of: Optional[datetime] = None
    documents: List[DocumentCompletionResponse]
    summary: StatsSummaryResponse


class PaginationResponse(ApiModel):
    page: int
    page_size: int
    total: int


class DocumentDetailResponse(ApiModel):
    data_as_of: Optional[datetime] = None
    document: DocumentCountsResponse
    acknowledged_users: List[AcknowledgedUserResponse]
    not_acknowledged_users: List[NotAcknowledgedUserResponse]
    pagination: PaginationResponse


# Roster sync

class RosterConfigResponse(ApiModel):
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class SyncResponse(ApiModel):
    synced: int
    last_synced_at: Optional[datetime] = None


# Service

class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool


class ValidationFieldError(BaseModel):
    field: str
    message: str


class ValidationErrorResponse(BaseModel):
    errors: List[ValidationFieldError]


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Dict[str, Any]] = None
