"""
Module: voucher_kernel.selectors.voucher_selector
Responsibility: Load a voucher and the facts the prerequisite validator
    needs (approval facts and quorum reviews), as frozen DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Facts are the only decision input.  This selector never reads the
      audit log.
    - ``for_update=True`` takes the voucher row lock (SELECT ... FOR UPDATE)
      so validate-then-write sees a stable status on PostgreSQL.

Failure modes:
    - VoucherNotFoundError for an unknown voucher id.
"""

from uuid import UUID

from sqlalchemy import select

from voucher_kernel.domain.voucher import (
    ApprovalFact,
    QuorumReviewFact,
    Voucher,
    VoucherFacts,
)
from voucher_kernel.exceptions import VoucherNotFoundError
from voucher_kernel.models.approval import ApprovalFactModel, QuorumReviewModel
from voucher_kernel.models.voucher import VoucherModel
from voucher_kernel.selectors.base import BaseSelector


class VoucherSelector(BaseSelector):
    """Read access to vouchers and their approval history."""

    def get_voucher(self, voucher_id: UUID, for_update: bool = False) -> Voucher:
        stmt = select(VoucherModel).where(VoucherModel.voucher_id == voucher_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise VoucherNotFoundError(str(voucher_id))
        return model.to_dto()

    def get_approval_facts(self, voucher_id: UUID) -> tuple[ApprovalFact, ...]:
        rows = self.session.execute(
            select(ApprovalFactModel)
            .where(ApprovalFactModel.voucher_id == voucher_id)
            .order_by(ApprovalFactModel.stage)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def get_quorum_reviews(self, voucher_id: UUID) -> tuple[QuorumReviewFact, ...]:
        rows = self.session.execute(
            select(QuorumReviewModel)
            .where(QuorumReviewModel.voucher_id == voucher_id)
            .order_by(QuorumReviewModel.decided_at, QuorumReviewModel.reviewer_id)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def load_facts(self, voucher_id: UUID, for_update: bool = False) -> VoucherFacts:
        """Voucher plus every approval fact and quorum review, in one snapshot."""
        voucher = self.get_voucher(voucher_id, for_update=for_update)
        return VoucherFacts(
            voucher=voucher,
            approval_facts=self.get_approval_facts(voucher_id),
            quorum_reviews=self.get_quorum_reviews(voucher_id),
        )
