"""
Module: voucher_kernel.models.voucher
Responsibility: ORM persistence for disbursement vouchers.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ value objects, and exceptions.py.

Invariants enforced:
    - status is one of the VoucherStatus values (CHECK constraint).
    - status changes are compare-and-swap updates issued by VoucherService;
      the model itself holds no transition logic.

Failure modes:
    - IntegrityError on an unknown status or duplicate voucher_id.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from voucher_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from voucher_kernel.domain.voucher import Voucher


class VoucherModel(Base):
    """Persistent voucher header.

    Contract:
        One row per voucher.  ``origin_role`` is fixed at creation and
        selects the workflow variant for the voucher's whole life.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING', 'VALIDATED', 'APPROVED', "
            "'RELEASED', 'REJECTED', 'CANCELLED')",
            name="ck_voucher_status",
        ),
        Index("idx_voucher_status", "status"),
        Index("idx_voucher_origin_role", "origin_role"),
    )

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    reference: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    origin_role: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> Voucher:
        from voucher_kernel.domain.voucher import Voucher
        from voucher_kernel.domain.workflow import VoucherStatus

        return Voucher(
            voucher_id=self.voucher_id,
            origin_role=self.origin_role,
            created_by_id=self.created_by_id,
            status=VoucherStatus(self.status),
            reference=self.reference,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_id} {self.status}>"
