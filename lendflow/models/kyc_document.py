import uuid

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from lendflow.db.base import Base


DOCUMENT_TYPE_NAMES = {
    "ID_PROOF": "Government ID (Aadhaar/Passport)",
    "ADDRESS_PROOF": "Address Proof (Utility Bill/Bank Statement)",
    "PAN_CARD": "PAN Card",
    "BANK_STATEMENT": "Bank Statement (Last 6 months)",
}


class KycDocument(Base):
    __tablename__ = "kyc_documents"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "type IN ('ID_PROOF', 'ADDRESS_PROOF', 'PAN_CARD', 'BANK_STATEMENT')",
            name="ck_kyc_documents_type",
        ),
        CheckConstraint(
            "status IN ('UPLOADING', 'PENDING', 'VERIFIED', 'REJECTED')",
            name="ck_kyc_documents_status",
        ),
        Index("ix_kyc_documents_status_created_at", "status", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="UPLOADING")
    storage_key = Column(String(512), nullable=False, unique=True)
    url = Column(String(1024), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    content_type = Column(String(100), nullable=True)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    verified_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    review_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user = relationship("User", foreign_keys=[user_id], back_populates="kyc_documents")

    @property
    def doc_type_name(self) -> str:
        return DOCUMENT_TYPE_NAMES.get(self.type, self.type)
