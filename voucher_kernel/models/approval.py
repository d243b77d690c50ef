"""
Module: voucher_kernel.models.approval
Responsibility: ORM persistence for approval facts and quorum reviews.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ value objects, and exceptions.py.

Invariants enforced:
    - At most one decision per (voucher_id, stage): UniqueConstraint.  Two
      racing approvals at one stage produce one row and one IntegrityError.
    - At most one vote per (voucher_id, reviewer_id): UniqueConstraint.
    - Append-only: before_update / before_delete listeners raise
      ImmutabilityViolationError.

Failure modes:
    - IntegrityError on a duplicate stage decision or duplicate vote.
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    These rows are the only source of truth for prerequisite checks.  The
    audit log records the same actions but is never read back for decisions.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from voucher_kernel.db.base import Base, UUIDString
from voucher_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from voucher_kernel.domain.voucher import ApprovalFact, QuorumReviewFact


class ApprovalFactModel(Base):
    """Persistent stage decision.

    Contract:
        Append-only.  One row per (voucher, stage).
    """

    __tablename__ = "approval_facts"

    __table_args__ = (
        UniqueConstraint("voucher_id", "stage", name="uq_approval_fact_stage"),
        CheckConstraint(
            "decision IN ('APPROVED', 'REJECTED')",
            name="ck_approval_fact_decision",
        ),
        CheckConstraint("stage >= 1", name="ck_approval_fact_stage_positive"),
        Index("idx_approval_fact_voucher", "voucher_id"),
    )

    fact_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True, default=uuid4,
    )
    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("vouchers.voucher_id"), nullable=False,
    )
    stage: Mapped[int] = mapped_column(nullable=False)
    acting_role: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    remarks: Mapped[str] = mapped_column(Text, nullable=False, default="")
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> ApprovalFact:
        from voucher_kernel.domain.voucher import ApprovalFact
        from voucher_kernel.domain.workflow import Decision

        return ApprovalFact(
            fact_id=self.fact_id,
            voucher_id=self.voucher_id,
            stage=self.stage,
            acting_role=self.acting_role,
            actor_id=self.actor_id,
            decision=Decision(self.decision),
            decided_at=self.decided_at,
            remarks=self.remarks or "",
        )

    def __repr__(self) -> str:
        return f"<ApprovalFact {self.voucher_id} stage={self.stage} {self.decision}>"


class QuorumReviewModel(Base):
    """Persistent quorum vote.

    Contract:
        Append-only.  One row per (voucher, reviewer).
    """

    __tablename__ = "quorum_reviews"

    __table_args__ = (
        UniqueConstraint("voucher_id", "reviewer_id", name="uq_quorum_review_reviewer"),
        Index("idx_quorum_review_voucher", "voucher_id"),
    )

    review_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True, default=uuid4,
    )
    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("vouchers.voucher_id"), nullable=False,
    )
    reviewer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    remarks: Mapped[str] = mapped_column(Text, nullable=False, default="")
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> QuorumReviewFact:
        from voucher_kernel.domain.voucher import QuorumReviewFact

        return QuorumReviewFact(
            review_id=self.review_id,
            voucher_id=self.voucher_id,
            reviewer_id=self.reviewer_id,
            decided_at=self.decided_at,
            remarks=self.remarks or "",
        )


# =========================================================================
# Immutability listeners
# =========================================================================


@event.listens_for(ApprovalFactModel, "before_update")
def prevent_fact_update(mapper, connection, target):
    """Prevent updates to approval facts."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalFact",
        entity_id=str(target.fact_id),
        reason="Approval facts are immutable -- cannot modify",
    )


@event.listens_for(ApprovalFactModel, "before_delete")
def prevent_fact_delete(mapper, connection, target):
    """Prevent deletion of approval facts."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalFact",
        entity_id=str(target.fact_id),
        reason="Approval facts are immutable -- cannot delete",
    )


@event.listens_for(QuorumReviewModel, "before_update")
def prevent_review_update(mapper, connection, target):
    """Prevent updates to quorum reviews."""
    raise ImmutabilityViolationError(
        entity_type="QuorumReview",
        entity_id=str(target.review_id),
        reason="Quorum reviews are immutable -- cannot modify",
    )


@event.listens_for(QuorumReviewModel, "before_delete")
def prevent_review_delete(mapper, connection, target):
    """Prevent deletion of quorum reviews."""
    raise ImmutabilityViolationError(
        entity_type="QuorumReview",
        entity_id=str(target.review_id),
        reason="Quorum reviews are immutable -- cannot delete",
    )
