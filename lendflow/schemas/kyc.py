from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from lendflow.schemas.common import (
    KycCompletionState,
    KycDocumentStatus,
    KycDocumentType,
    LoanType,
    UserRole,
)


class UploadUrlRequest(BaseModel):
    doc_type: KycDocumentType = Field(alias="docType")

    model_config = ConfigDict(populate_by_name=True)


class CompleteUploadRequest(BaseModel):
    document_id: UUID = Field(alias="kycDocId")
    storage_key: str = Field(alias="publicId", min_length=1, max_length=512)
    file_size: int = Field(alias="fileSize", ge=1)
    content_type: str = Field(alias="contentType", min_length=1, max_length=100)

    model_config = ConfigDict(populate_by_name=True)


class VerifyRequest(BaseModel):
    status: KycDocumentStatus
    notes: str | None = Field(default="", max_length=1000)


class UploadAuthorization(BaseModel):
    document_id: UUID
    upload_url: str
    method: str = "POST"
    storage_key: str
    signed_params: dict[str, Any] = {}
    headers: dict[str, str] = {}
    expires_at: datetime | None = None
    instructions: str


class KycDocumentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: KycDocumentType
    status: KycDocumentStatus
    url: str | None = None
    user_id: UUID
    verified_by: UUID | None = None
    file_size: int | None = None
    content_type: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class KycDocumentView(KycDocumentDTO):
    doc_type_name: str
    is_pending: bool
    needs_resubmission: bool


class KycOwnerProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    phone: str | None = None
    role: UserRole


class KycReviewItem(KycDocumentDTO):
    doc_type_name: str
    days_pending: int
    user: KycOwnerProfile | None = None
    user_full_name: str | None = None
    user_role: UserRole | None = None


class KycReviewDetail(KycDocumentDTO):
    doc_type_name: str
    days_pending: int
    is_overdue: bool
    review_notes: str | None = None
    user: KycOwnerProfile | None = None


class RequiredDocument(BaseModel):
    type: KycDocumentType
    display_name: str
    required: bool = True


class KycCompletion(BaseModel):
    percent_complete: int
    completed: int
    pending: int
    incomplete: int
    status: KycCompletionState
    needs_action: bool


class KycStatusResponse(BaseModel):
    documents: list[KycDocumentView]
    required_documents: list[RequiredDocument]
    completion: KycCompletion
    overall_status: str


class RequiredDocumentsResponse(BaseModel):
    user_role: UserRole
    loan_type: LoanType | str
    required_documents: list[RequiredDocument]
    total_required: int


class KycReviewQueue(BaseModel):
    documents: list[KycReviewItem]
    total_pending: int
    limit: int


class CompleteUploadResponse(BaseModel):
    document: KycDocumentDTO
    next_steps: list[str]


class VerifyResponse(BaseModel):
    document_id: UUID
    new_status: KycDocumentStatus
    action: str
    notes: str | None = None
    document: KycDocumentDTO
