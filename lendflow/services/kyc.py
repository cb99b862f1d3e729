import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from lendflow.core.errors import (
    AlreadyDecided,
    InvalidTransition,
    NotFound,
    PayloadTooLarge,
    UnsupportedMediaType,
    ValidationFailed,
)
from lendflow.core.settings import settings
from lendflow.models.kyc_document import DOCUMENT_TYPE_NAMES, KycDocument
from lendflow.schemas.common import (
    AuditAction,
    KycCompletionState,
    KycDocumentStatus,
    KycDocumentType,
    LoanType,
    UserRole,
    enum_value,
)
from lendflow.schemas.kyc import (
    KycCompletion,
    KycDocumentView,
    KycOwnerProfile,
    KycReviewDetail,
    KycReviewItem,
    RequiredDocument,
    UploadAuthorization,
)
from lendflow.services.audit import AuditTrail
from lendflow.services.storage.adapter import StorageAdapter
from lendflow.services.storage.key_generator import KeyGenerator
from lendflow.services.storage.service import get_storage_adapter

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "kyc_document"
SECONDS_PER_DAY = 86400

BASE_REQUIREMENTS: dict[UserRole, tuple[KycDocumentType, ...]] = {
    UserRole.CUSTOMER: (
        KycDocumentType.ID_PROOF,
        KycDocumentType.ADDRESS_PROOF,
        KycDocumentType.PAN_CARD,
    ),
    UserRole.MERCHANT: (
        KycDocumentType.ID_PROOF,
        KycDocumentType.ADDRESS_PROOF,
        KycDocumentType.PAN_CARD,
        KycDocumentType.BANK_STATEMENT,
    ),
    UserRole.BANKER: (),
}

LOAN_TYPE_REQUIREMENTS: dict[LoanType, tuple[KycDocumentType, ...]] = {
    LoanType.BUSINESS: (KycDocumentType.BANK_STATEMENT,),
    LoanType.VEHICLE: (KycDocumentType.ADDRESS_PROOF,),
    LoanType.EQUIPMENT: (KycDocumentType.BANK_STATEMENT,),
}

DECIDED_STATUSES = frozenset({KycDocumentStatus.VERIFIED.value, KycDocumentStatus.REJECTED.value})


def doc_type_name(doc_type) -> str:
    value = enum_value(doc_type)
    return DOCUMENT_TYPE_NAMES.get(value, value)


CONTENT_TYPE_LABELS = {"image/jpeg": "JPG", "image/png": "PNG", "application/pdf": "PDF"}


def _size_label(size_bytes: int) -> str:
    if size_bytes % (1024 * 1024) == 0:
        return f"{size_bytes // (1024 * 1024)}MB"
    return f"{size_bytes // 1024}KB"


def upload_instructions(doc_type) -> str:
    labels = [
        CONTENT_TYPE_LABELS.get(content_type, content_type.rsplit("/", 1)[-1].upper())
        for content_type in settings.kyc_allowed_types
    ]
    limits = f"Max {_size_label(settings.kyc_max_file_size)}, {'/'.join(labels)}"
    return f"Upload your {doc_type_name(doc_type)} ({limits})"


def required_documents(role, loan_type=None) -> list[RequiredDocument]:
    """Documents a user of ``role`` must have verified, optionally for a given loan type."""
    role = UserRole(enum_value(role))
    types: list[KycDocumentType] = list(BASE_REQUIREMENTS.get(role, ()))
    if loan_type:
        try:
            extra = LOAN_TYPE_REQUIREMENTS.get(LoanType(enum_value(loan_type)), ())
        except ValueError:
            extra = ()
        for doc_type in extra:
            if doc_type not in types:
                types.append(doc_type)
    return [
        RequiredDocument(type=doc_type, display_name=doc_type_name(doc_type))
        for doc_type in types
    ]


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    ratio = Decimal(part) * 100 / Decimal(whole)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def completion_status(documents: Iterable, required: Sequence[RequiredDocument]) -> KycCompletion:
    """Aggregate progress of ``documents`` against the ``required`` document types.

    A type counts as completed when any of its documents is VERIFIED, and as pending when
    it has a PENDING document but no VERIFIED one.
    """
    verified_types: set[str] = set()
    pending_types: set[str] = set()
    for doc in documents:
        status = enum_value(doc.status)
        if status == KycDocumentStatus.VERIFIED.value:
            verified_types.add(enum_value(doc.type))
        elif status == KycDocumentStatus.PENDING.value:
            pending_types.add(enum_value(doc.type))

    required_types = [enum_value(item.type) for item in required]
    total = len(required_types)
    completed = sum(1 for doc_type in required_types if doc_type in verified_types)
    pending = sum(
        1 for doc_type in required_types if doc_type in pending_types and doc_type not in verified_types
    )
    incomplete = total - completed - pending

    if total == 0:
        state = KycCompletionState.NOT_REQUIRED
    elif completed == total:
        state = KycCompletionState.COMPLETE
    elif pending > 0:
        state = KycCompletionState.IN_PROGRESS
    else:
        state = KycCompletionState.INCOMPLETE

    return KycCompletion(
        percent_complete=_percent(completed, total),
        completed=completed,
        pending=pending,
        incomplete=incomplete,
        status=state,
        needs_action=pending + incomplete > 0,
    )


def days_pending(created_at: datetime | None, now: datetime | None = None) -> int:
    if created_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0, int((now - created_at).total_seconds() // SECONDS_PER_DAY))


def _owner_profile(document: KycDocument) -> KycOwnerProfile | None:
    owner = getattr(document, "user", None)
    if owner is None:
        return None
    return KycOwnerProfile.model_validate(owner)


def _dto_fields(document: KycDocument) -> dict:
    return {
        "id": document.id,
        "type": document.type,
        "status": document.status,
        "url": document.url,
        "user_id": document.user_id,
        "verified_by": document.verified_by,
        "file_size": document.file_size,
        "content_type": document.content_type,
        "created_at": document.created_at,
        "updated_at": document.updated_at,
    }


@dataclass(slots=True)
class KycDecision:
    document: KycDocument
    action: AuditAction
    message: str


class KycLedger:
    def __init__(
        self,
        db: AsyncSession,
        *,
        audit: AuditTrail | None = None,
        storage: StorageAdapter | None = None,
    ):
        self.db = db
        self.audit = audit or AuditTrail(db)
        self._storage = storage

    @property
    def storage(self) -> StorageAdapter:
        if self._storage is None:
            self._storage = get_storage_adapter()
        return self._storage

    async def _get(self, document_id: UUID, *, with_owner: bool = False) -> KycDocument | None:
        if not with_owner:
            return await self.db.get(KycDocument, document_id)
        stmt = (
            select(KycDocument)
            .options(selectinload(KycDocument.user))
            .where(KycDocument.id == document_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def register_upload(self, user_id: UUID, doc_type) -> UploadAuthorization:
        try:
            doc_type = KycDocumentType(enum_value(doc_type))
        except ValueError as exc:
            raise ValidationFailed("Invalid document type") from exc

        document_id = uuid4()
        storage_key = KeyGenerator.generate_kyc_key(user_id, doc_type.value)
        upload = self.storage.generate_upload_authorization(storage_key)

        document = KycDocument(
            id=document_id,
            type=doc_type.value,
            status=KycDocumentStatus.UPLOADING.value,
            storage_key=storage_key,
            user_id=user_id,
        )
        self.db.add(document)
        await self.db.commit()

        logger.info(
            "KYC upload registered document_id=%s user_id=%s doc_type=%s provider=%s",
            document_id,
            user_id,
            doc_type.value,
            self.storage.provider,
        )
        return UploadAuthorization(
            document_id=document_id,
            upload_url=upload["upload_url"],
            method=upload.get("method", "POST"),
            storage_key=storage_key,
            signed_params=upload.get("signed_params", {}),
            headers=upload.get("headers", {}),
            expires_at=upload.get("expires_at"),
            instructions=upload_instructions(doc_type),
        )

    async def finalize_upload(
        self,
        document_id: UUID,
        storage_key: str,
        file_size: int,
        content_type: str,
        *,
        owner_id: UUID | None = None,
    ) -> KycDocument:
        if file_size > settings.kyc_max_file_size:
            raise PayloadTooLarge(
                f"File size exceeds {settings.kyc_max_file_size // (1024 * 1024)}MB limit"
            )
        normalized_type = (content_type or "").split(";")[0].strip().lower()
        if normalized_type not in settings.kyc_allowed_types:
            raise UnsupportedMediaType("Invalid file type. Only JPG, PNG, PDF allowed")

        document = await self._get(document_id)
        if document is None or (owner_id is not None and document.user_id != owner_id):
            raise NotFound("KYC document not found")
        if storage_key != document.storage_key:
            raise ValidationFailed(
                "Storage key does not match the registered upload",
                errors=[{"field": "publicId", "message": "Does not match the registered upload"}],
            )
        if settings.enforce_terminal_decisions and document.status != KycDocumentStatus.UPLOADING.value:
            if document.status in DECIDED_STATUSES:
                raise AlreadyDecided(f"KYC document already {document.status.lower()}")
            raise InvalidTransition("Upload already completed for this document")

        document.status = KycDocumentStatus.PENDING.value
        document.url = self.storage.resolve_url(document.storage_key)
        document.verified_by = None
        document.file_size = file_size
        document.content_type = normalized_type
        document.updated_at = datetime.now(timezone.utc)
        self.db.add(document)
        await self.db.commit()
        await self.db.refresh(document)

        logger.info(
            "KYC upload completed document_id=%s file_size=%s content_type=%s",
            document.id,
            file_size,
            normalized_type,
        )
        await self.audit.append(
            AuditAction.KYC_DOCUMENT_UPLOADED,
            resource_type=RESOURCE_TYPE,
            resource_id=document.id,
            actor_id=owner_id or document.user_id,
            details=f"File uploaded: {file_size} bytes, {normalized_type}",
        )
        return document

    async def list_for_user(self, user_id: UUID, status=None) -> list[KycDocumentView]:
        stmt = select(KycDocument).where(KycDocument.user_id == user_id)
        if status:
            stmt = stmt.where(KycDocument.status == enum_value(status))
        stmt = stmt.order_by(KycDocument.created_at.desc())
        result = await self.db.execute(stmt)
        documents = result.scalars().all()
        return [
            KycDocumentView(
                **_dto_fields(doc),
                doc_type_name=doc_type_name(doc.type),
                is_pending=doc.status == KycDocumentStatus.PENDING.value,
                needs_resubmission=doc.status == KycDocumentStatus.REJECTED.value,
            )
            for doc in documents
        ]

    async def list_pending_for_review(
        self, limit: int | None = None, *, now: datetime | None = None
    ) -> list[KycReviewItem]:
        limit = limit or settings.kyc_review_queue_limit
        stmt = (
            select(KycDocument)
            .options(selectinload(KycDocument.user))
            .where(KycDocument.status == KycDocumentStatus.PENDING.value)
            .order_by(KycDocument.created_at.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        items: list[KycReviewItem] = []
        for doc in result.scalars().all():
            owner = _owner_profile(doc)
            items.append(
                KycReviewItem(
                    **_dto_fields(doc),
                    doc_type_name=doc_type_name(doc.type),
                    days_pending=days_pending(doc.created_at, now),
                    user=owner,
                    user_full_name=owner.name if owner else None,
                    user_role=owner.role if owner else None,
                )
            )
        return items

    async def get_for_review(
        self, document_id: UUID, *, now: datetime | None = None
    ) -> KycReviewDetail:
        document = await self._get(document_id, with_owner=True)
        if document is None:
            raise NotFound("KYC document not found")
        waited = days_pending(document.created_at, now)
        return KycReviewDetail(
            **_dto_fields(document),
            doc_type_name=doc_type_name(document.type),
            days_pending=waited,
            is_overdue=(
                document.status == KycDocumentStatus.PENDING.value
                and waited > settings.kyc_overdue_days
            ),
            review_notes=document.review_notes,
            user=_owner_profile(document),
        )

    async def verify(
        self,
        document_id: UUID,
        decision,
        reviewer_id: UUID,
        notes: str | None = None,
    ) -> KycDecision:
        decision_value = enum_value(decision)
        if decision_value not in DECIDED_STATUSES:
            raise InvalidTransition("Status must be VERIFIED or REJECTED")

        document = await self._get(document_id)
        if document is None:
            raise NotFound("KYC document not found")
        if settings.enforce_terminal_decisions and document.status != KycDocumentStatus.PENDING.value:
            if document.status in DECIDED_STATUSES:
                raise AlreadyDecided(f"KYC document already {document.status.lower()}")
            raise InvalidTransition("KYC document has not been uploaded yet")

        verified = decision_value == KycDocumentStatus.VERIFIED.value
        document.status = decision_value
        document.verified_by = reviewer_id if verified else None
        document.review_notes = notes or None
        document.updated_at = datetime.now(timezone.utc)
        self.db.add(document)
        await self.db.commit()
        await self.db.refresh(document)

        action = AuditAction.KYC_VERIFIED if verified else AuditAction.KYC_REJECTED
        logger.info(
            "KYC document decided document_id=%s status=%s reviewer_id=%s",
            document.id,
            decision_value,
            reviewer_id,
        )
        await self.audit.append(
            action,
            resource_type=RESOURCE_TYPE,
            resource_id=document.id,
            actor_id=reviewer_id,
            details=notes or None,
        )
        if verified:
            message = "Document verified successfully"
        elif notes:
            message = f"Document rejected: {notes}"
        else:
            message = "Document rejected"
        return KycDecision(document=document, action=action, message=message)
