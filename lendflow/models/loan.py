import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from lendflow.db.base import Base


MIN_LOAN_AMOUNT = 1000
MAX_LOAN_AMOUNT = 5_000_000


class Loan(Base):
    __tablename__ = "loans"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            f"amount >= {MIN_LOAN_AMOUNT} AND amount <= {MAX_LOAN_AMOUNT}",
            name="ck_loans_amount_range",
        ),
        CheckConstraint(
            "type IN ('PERSONAL', 'BUSINESS', 'VEHICLE', 'EQUIPMENT')",
            name="ck_loans_type",
        ),
        CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name="ck_loans_status"),
        Index("ix_loans_status_created_at", "status", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(20), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    purpose = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")
    applicant_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    merchant_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    banker_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    applicant = relationship("User", foreign_keys=[applicant_id], back_populates="loans")
    merchant = relationship("User", foreign_keys=[merchant_id])
    banker = relationship("User", foreign_keys=[banker_id])
