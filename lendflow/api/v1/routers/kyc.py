import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lendflow.api import deps
from lendflow.core.errors import Forbidden, NotFound, PayloadTooLarge, ValidationFailed
from lendflow.core.permissions import Operation
from lendflow.core.response_envelope import envelope
from lendflow.core.settings import settings
from lendflow.db.session import get_db
from lendflow.schemas.common import KycCompletionState, KycDocumentStatus, LoanType, UserRole
from lendflow.schemas.kyc import (
    CompleteUploadRequest,
    CompleteUploadResponse,
    KycDocumentDTO,
    KycReviewQueue,
    KycStatusResponse,
    RequiredDocumentsResponse,
    UploadUrlRequest,
    VerifyRequest,
    VerifyResponse,
)
from lendflow.services.authz import Principal
from lendflow.services.kyc import KycLedger, completion_status, doc_type_name, required_documents
from lendflow.services.storage.adapter import LocalFileSystemAdapter, verify_local_url_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kyc", tags=["kyc"])

UPLOAD_NEXT_STEPS = [
    "Document submitted for verification",
    "Banker review typically takes 1-2 business days",
    "You will receive notification when verified",
]


@router.post("/upload-url")
async def create_upload_url(
    payload: UploadUrlRequest,
    principal: Principal = Depends(deps.require_operation(Operation.KYC_UPLOAD)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    authorization = await KycLedger(db).register_upload(principal.user_id, payload.doc_type)
    return envelope(authorization, f"Upload signature generated for {authorization.instructions}")


@router.post("/complete-upload")
async def complete_upload(
    payload: CompleteUploadRequest,
    principal: Principal = Depends(deps.require_operation(Operation.KYC_UPLOAD)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    document = await KycLedger(db).finalize_upload(
        payload.document_id,
        payload.storage_key,
        payload.file_size,
        payload.content_type,
        owner_id=principal.user_id,
    )
    data = CompleteUploadResponse(
        document=KycDocumentDTO.model_validate(document),
        next_steps=UPLOAD_NEXT_STEPS,
    )
    return envelope(data, "KYC document uploaded successfully")


# --- Local storage endpoints ---


@router.put("/local-content")
async def upload_local_content(
    request: Request,
    key: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    principal: Principal = Depends(deps.require_operation(Operation.KYC_UPLOAD)),
) -> dict:
    if settings.storage_provider != "local":
        raise NotFound("Not supported")
    if not verify_local_url_signature(settings.secret_key, key, expires, signature):
        raise Forbidden("Invalid or expired URL signature")
    if not key.startswith(f"{principal.user_id}/"):
        raise Forbidden("Upload key does not belong to the current user")

    body = await request.body()
    if len(body) > settings.kyc_max_file_size:
        raise PayloadTooLarge(f"File size exceeds {settings.kyc_max_file_size // (1024 * 1024)}MB limit")

    adapter = LocalFileSystemAdapter(base_path=settings.local_upload_dir, base_url="")
    try:
        adapter.write_file(key, body)
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc

    logger.info("Local KYC content stored bytes=%s", len(body))
    return envelope({"storage_key": key, "file_size": len(body)}, "Upload stored")


@router.get("/local-content", response_class=FileResponse)
async def download_local_content(
    key: str = Query(...),
    principal: Principal = Depends(deps.require_operation(Operation.KYC_CONTENT_VIEW)),
) -> FileResponse:
    if settings.storage_provider != "local":
        raise NotFound("Not supported")
    # Owners read their own documents; bankers read any document they review
    if principal.role != UserRole.BANKER and not key.startswith(f"{principal.user_id}/"):
        raise NotFound("KYC document not found")

    adapter = LocalFileSystemAdapter(base_path=settings.local_upload_dir, base_url="")
    try:
        path = adapter.resolve_path(key)
    except ValueError as exc:
        raise ValidationFailed(str(exc)) from exc
    if not path.is_file():
        raise NotFound("KYC document not found")
    return FileResponse(path)


@router.get("/status")
async def read_status(
    status: KycDocumentStatus | None = Query(default=None),
    principal: Principal = Depends(deps.require_operation(Operation.KYC_STATUS_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    documents = await KycLedger(db).list_for_user(principal.user_id, status)
    required = required_documents(principal.role)
    completion = completion_status(documents, required)
    data = KycStatusResponse(
        documents=documents,
        required_documents=required,
        completion=completion,
        overall_status="COMPLETE" if completion.status == KycCompletionState.COMPLETE else "INCOMPLETE",
    )
    return envelope(data, f"KYC status: {completion.status.value}")


@router.get("/required")
async def read_required(
    loan_type: LoanType | None = Query(default=None, alias="loanType"),
    principal: Principal = Depends(deps.require_operation(Operation.KYC_REQUIREMENTS_VIEW)),
) -> dict:
    required = required_documents(principal.role, loan_type)
    data = RequiredDocumentsResponse(
        user_role=principal.role,
        loan_type=loan_type or "general",
        required_documents=required,
        total_required=len(required),
    )
    return envelope(data, "Required KYC documents retrieved")


@router.get("/pending")
async def list_pending(
    limit: int | None = Query(default=None, ge=1, le=100),
    principal: Principal = Depends(deps.require_operation(Operation.KYC_REVIEW)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    limit = limit or settings.kyc_review_queue_limit
    documents = await KycLedger(db).list_pending_for_review(limit)
    data = KycReviewQueue(documents=documents, total_pending=len(documents), limit=limit)
    return envelope(data, f"Found {len(documents)} pending KYC document(s)")


@router.get("/{document_id}/review")
async def read_for_review(
    document_id: UUID,
    principal: Principal = Depends(deps.require_operation(Operation.KYC_REVIEW)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    detail = await KycLedger(db).get_for_review(document_id)
    return envelope(detail, f"KYC document details for review: {doc_type_name(detail.type)}")


@router.post("/{document_id}/verify")
async def verify_document(
    document_id: UUID,
    payload: VerifyRequest,
    principal: Principal = Depends(deps.require_operation(Operation.KYC_VERIFY)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    decision = await KycLedger(db).verify(document_id, payload.status, principal.user_id, payload.notes)
    data = VerifyResponse(
        document_id=document_id,
        new_status=payload.status,
        action=decision.action.value,
        notes=payload.notes or None,
        document=KycDocumentDTO.model_validate(decision.document),
    )
    return envelope(data, decision.message)
