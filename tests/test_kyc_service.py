from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from conftest import FakeAsyncSession, FakeResult, compiled_sql, entity_handler, make_kyc_document, make_user

from lendflow.core.errors import (
    AlreadyDecided,
    InvalidTransition,
    NotFound,
    PayloadTooLarge,
    UnsupportedMediaType,
    ValidationFailed,
)
from lendflow.core.settings import settings
from lendflow.models import AuditLog, KycDocument
from lendflow.schemas.common import AuditAction, KycDocumentStatus
from lendflow.services.kyc import KycLedger

MAX_SIZE = 5 * 1024 * 1024


class StubStorage:
    provider = "stub"

    def __init__(self):
        self.authorized: list[str] = []

    def generate_upload_authorization(self, object_key):
        self.authorized.append(object_key)
        return {
            "upload_url": "https://uploads.example.com/upload",
            "method": "POST",
            "headers": {},
            "signed_params": {"public_id": object_key, "signature": "sig"},
            "expires_at": "2030-01-01T00:00:00+00:00",
        }

    def resolve_url(self, object_key):
        return f"https://cdn.example.com/{object_key}"


@pytest.fixture
def storage():
    return StubStorage()


@pytest.fixture(autouse=True)
def _kyc_settings(monkeypatch):
    monkeypatch.setattr(settings, "kyc_max_file_size", MAX_SIZE)
    monkeypatch.setattr(settings, "kyc_allowed_types_csv", "image/jpeg,image/png,application/pdf")
    monkeypatch.setattr(settings, "enforce_terminal_decisions", True)


def _ledger(db, storage) -> KycLedger:
    return KycLedger(db, storage=storage)


def _uploading(owner=None, **overrides):
    return make_kyc_document(owner=owner, status="UPLOADING", **overrides)


@pytest.mark.asyncio
async def test_register_upload_creates_uploading_row_with_unique_key(storage):
    db = FakeAsyncSession()
    user_id = uuid4()

    first = await _ledger(db, storage).register_upload(user_id, "PAN_CARD")
    second = await _ledger(db, storage).register_upload(user_id, "PAN_CARD")

    documents = db.added_of(KycDocument)
    assert len(documents) == 2
    assert documents[0].status == "UPLOADING"
    assert documents[0].url is None
    assert first.storage_key.startswith(f"{user_id}/PAN_CARD/")
    assert first.storage_key != second.storage_key
    assert first.document_id == documents[0].id
    assert first.signed_params["public_id"] == first.storage_key
    assert first.instructions == "Upload your PAN Card (Max 5MB, JPG/PNG/PDF)"
    assert storage.authorized == [first.storage_key, second.storage_key]


@pytest.mark.asyncio
async def test_register_upload_instructions_follow_configured_limits(storage, monkeypatch):
    monkeypatch.setattr(settings, "kyc_max_file_size", 10 * 1024 * 1024)
    monkeypatch.setattr(settings, "kyc_allowed_types_csv", "application/pdf,image/webp")

    authorization = await _ledger(FakeAsyncSession(), storage).register_upload(uuid4(), "BANK_STATEMENT")

    assert authorization.instructions == "Upload your Bank Statement (Last 6 months) (Max 10MB, PDF/WEBP)"


@pytest.mark.asyncio
async def test_register_upload_rejects_unknown_type(storage):
    with pytest.raises(ValidationFailed):
        await _ledger(FakeAsyncSession(), storage).register_upload(uuid4(), "PASSPORT_PHOTO")


@pytest.mark.asyncio
async def test_finalize_upload_at_size_limit_succeeds(storage):
    owner = make_user()
    document = _uploading(owner)
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    result = await _ledger(db, storage).finalize_upload(
        document.id, document.storage_key, MAX_SIZE, "application/pdf", owner_id=owner.id
    )

    assert result.status == "PENDING"
    assert result.url == f"https://cdn.example.com/{document.storage_key}"
    assert result.file_size == MAX_SIZE
    assert result.content_type == "application/pdf"
    assert result.verified_by is None
    entries = db.added_of(AuditLog)
    assert [entry.action for entry in entries] == [AuditAction.KYC_DOCUMENT_UPLOADED.value]
    assert entries[0].resource_type == "kyc_document"
    assert entries[0].resource_id == str(document.id)


@pytest.mark.asyncio
async def test_finalize_upload_one_byte_over_limit_is_too_large(storage):
    document = _uploading()
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    with pytest.raises(PayloadTooLarge):
        await _ledger(db, storage).finalize_upload(
            document.id, document.storage_key, MAX_SIZE + 1, "image/png"
        )
    assert document.status == "UPLOADING"


@pytest.mark.asyncio
async def test_finalize_upload_rejects_unsupported_type(storage):
    document = _uploading()
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    with pytest.raises(UnsupportedMediaType):
        await _ledger(db, storage).finalize_upload(document.id, document.storage_key, 100, "image/gif")


@pytest.mark.asyncio
async def test_finalize_upload_not_found_for_other_owner(storage):
    document = _uploading()
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    with pytest.raises(NotFound):
        await _ledger(db, storage).finalize_upload(
            document.id, document.storage_key, 100, "image/png", owner_id=uuid4()
        )


@pytest.mark.asyncio
async def test_finalize_upload_rejects_mismatched_key(storage):
    document = _uploading()
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    with pytest.raises(ValidationFailed):
        await _ledger(db, storage).finalize_upload(document.id, "someone/else/key", 100, "image/png")


@pytest.mark.asyncio
async def test_finalize_upload_twice_is_refused_with_guard(storage):
    document = make_kyc_document(status="VERIFIED")
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    with pytest.raises(AlreadyDecided):
        await _ledger(db, storage).finalize_upload(document.id, document.storage_key, 100, "image/png")

    pending = make_kyc_document(status="PENDING")
    db.on_get(KycDocument, pending.id, pending)
    with pytest.raises(InvalidTransition):
        await _ledger(db, storage).finalize_upload(pending.id, pending.storage_key, 100, "image/png")


@pytest.mark.asyncio
async def test_finalize_upload_without_guard_resets_to_pending(storage, monkeypatch):
    monkeypatch.setattr(settings, "enforce_terminal_decisions", False)
    document = make_kyc_document(status="VERIFIED", verified_by=uuid4())
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    result = await _ledger(db, storage).finalize_upload(document.id, document.storage_key, 100, "image/png")

    assert result.status == "PENDING"
    assert result.verified_by is None


@pytest.mark.asyncio
async def test_list_for_user_annotates_documents(storage):
    owner = make_user()
    pending = make_kyc_document(owner=owner, doc_type="PAN_CARD", status="PENDING")
    rejected = make_kyc_document(owner=owner, doc_type="ID_PROOF", status="REJECTED")
    db = FakeAsyncSession().on_execute(entity_handler(KycDocument, FakeResult(items=[pending, rejected])))

    views = await _ledger(db, storage).list_for_user(owner.id, KycDocumentStatus.PENDING)

    assert [view.id for view in views] == [pending.id, rejected.id]
    assert views[0].is_pending is True
    assert views[0].doc_type_name == "PAN Card"
    assert views[1].needs_resubmission is True
    sql = compiled_sql(db.statements[0])
    assert "kyc_documents.status = " in sql
    assert "ORDER BY kyc_documents.created_at DESC" in sql


@pytest.mark.asyncio
async def test_pending_queue_annotates_days_and_owner(storage):
    owner = make_user(role="MERCHANT", name="Asha Traders")
    now = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)
    document = make_kyc_document(owner=owner, created_at=now - timedelta(days=4, hours=23))
    db = FakeAsyncSession().on_execute(entity_handler(KycDocument, FakeResult(items=[document])))

    items = await _ledger(db, storage).list_pending_for_review(10, now=now)

    assert items[0].days_pending == 4
    assert items[0].user_full_name == "Asha Traders"
    assert items[0].user_role.value == "MERCHANT"
    assert items[0].user.email == owner.email
    sql = compiled_sql(db.statements[0])
    assert "ORDER BY kyc_documents.created_at ASC" in sql
    assert "LIMIT" in sql


@pytest.mark.asyncio
async def test_get_for_review_flags_overdue(storage, monkeypatch):
    monkeypatch.setattr(settings, "kyc_overdue_days", 3)
    now = datetime(2025, 1, 10, tzinfo=timezone.utc)
    overdue = make_kyc_document(created_at=now - timedelta(days=4))
    db = FakeAsyncSession().on_execute_return(FakeResult(scalar=overdue))

    detail = await _ledger(db, storage).get_for_review(overdue.id, now=now)

    assert detail.is_overdue is True
    assert detail.days_pending == 4
    assert detail.user.id == overdue.user_id


@pytest.mark.asyncio
async def test_get_for_review_not_found(storage):
    with pytest.raises(NotFound):
        await _ledger(FakeAsyncSession(), storage).get_for_review(uuid4())


@pytest.mark.asyncio
async def test_verify_sets_reviewer_and_audits(storage):
    document = make_kyc_document(status="PENDING")
    reviewer = uuid4()
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    decision = await _ledger(db, storage).verify(document.id, "VERIFIED", reviewer, "looks good")

    assert document.status == "VERIFIED"
    assert document.verified_by == reviewer
    assert document.review_notes == "looks good"
    assert decision.action == AuditAction.KYC_VERIFIED
    assert decision.message == "Document verified successfully"
    assert [entry.action for entry in db.added_of(AuditLog)] == ["KYC_VERIFIED"]


@pytest.mark.asyncio
async def test_reject_clears_reviewer(storage, monkeypatch):
    monkeypatch.setattr(settings, "enforce_terminal_decisions", False)
    document = make_kyc_document(status="VERIFIED", verified_by=uuid4())
    db = FakeAsyncSession().on_get(KycDocument, document.id, document)

    decision = await _ledger(db, storage).verify(document.id, "REJECTED", uuid4(), "blurry scan")

    assert document.status == "REJECTED"
    assert document.verified_by is None
    assert decision.message == "Document rejected: blurry scan"


@pytest.mark.asyncio
async def test_verify_rejects_non_terminal_decision(storage):
    with pytest.raises(InvalidTransition):
        await _ledger(FakeAsyncSession(), storage).verify(uuid4(), "PENDING", uuid4())


@pytest.mark.asyncio
async def test_verify_guards_decided_and_uploading_documents(storage):
    decided = make_kyc_document(status="REJECTED")
    uploading = make_kyc_document(status="UPLOADING")
    db = (
        FakeAsyncSession()
        .on_get(KycDocument, decided.id, decided)
        .on_get(KycDocument, uploading.id, uploading)
    )

    with pytest.raises(AlreadyDecided):
        await _ledger(db, storage).verify(decided.id, "VERIFIED", uuid4())
    with pytest.raises(InvalidTransition):
        await _ledger(db, storage).verify(uploading.id, "VERIFIED", uuid4())


@pytest.mark.asyncio
async def test_verify_not_found(storage):
    with pytest.raises(NotFound):
        await _ledger(FakeAsyncSession(), storage).verify(uuid4(), "VERIFIED", uuid4())
