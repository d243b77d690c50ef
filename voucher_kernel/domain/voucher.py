"""
Voucher domain records (``voucher_kernel.domain.voucher``).

Responsibility
--------------
Frozen value objects for vouchers, approval facts, quorum reviews, the
validator's verdicts, and the results returned by the approval service.
Also declares the outbound ``Notifier`` protocol.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``VoucherFacts`` is the only input to prerequisite checks: approval facts
  and quorum reviews.  The audit log never appears here.
* Distinct-reviewer counting: ``VoucherFacts.quorum_reviewers`` is a set,
  so a reviewer counts once no matter how the rows were loaded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

from voucher_kernel.domain.workflow import (
    TERMINAL_VOUCHER_STATUSES,
    Decision,
    VoucherStatus,
    WorkflowStage,
    WorkflowVariantKind,
)


@dataclass(frozen=True)
class Voucher:
    """Snapshot of a voucher's identity and coarse lifecycle status."""

    voucher_id: UUID
    origin_role: str
    created_by_id: UUID
    status: VoucherStatus
    reference: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def snapshot(self) -> dict[str, str]:
        """Minimal JSON-safe view used for audit before/after payloads."""
        return {
            "voucher_id": str(self.voucher_id),
            "status": self.status.value,
            "origin_role": self.origin_role,
        }


@dataclass(frozen=True)
class ApprovalFact:
    """Immutable record of one role's decision at one stage of one voucher."""

    fact_id: UUID
    voucher_id: UUID
    stage: int
    acting_role: str
    actor_id: UUID
    decision: Decision
    decided_at: datetime
    remarks: str = ""


@dataclass(frozen=True)
class QuorumReviewFact:
    """One reviewer's affirmative vote at the quorum stage."""

    review_id: UUID
    voucher_id: UUID
    reviewer_id: UUID
    decided_at: datetime
    remarks: str = ""


@dataclass(frozen=True)
class VoucherFacts:
    """Everything the prerequisite validator may look at for one voucher."""

    voucher: Voucher
    approval_facts: tuple[ApprovalFact, ...] = ()
    quorum_reviews: tuple[QuorumReviewFact, ...] = ()

    def fact_at(self, stage: int) -> ApprovalFact | None:
        for fact in self.approval_facts:
            if fact.stage == stage:
                return fact
        return None

    def is_approved(self, stage: int) -> bool:
        return any(
            f.stage == stage and f.decision == Decision.APPROVED
            for f in self.approval_facts
        )

    @property
    def quorum_reviewers(self) -> frozenset[UUID]:
        return frozenset(r.reviewer_id for r in self.quorum_reviews)

    @property
    def quorum_count(self) -> int:
        return len(self.quorum_reviewers)


# =========================================================================
# Validator verdicts
# =========================================================================


class BlockReason(str, Enum):
    """Why an actor cannot act right now."""

    DUPLICATE_ACTION = "DUPLICATE_ACTION"
    PREREQUISITE_UNSATISFIED = "PREREQUISITE_UNSATISFIED"
    WRONG_LIFECYCLE_STATUS = "WRONG_LIFECYCLE_STATUS"


@dataclass(frozen=True)
class Readiness:
    """Result of a prerequisite check: ready, or blocked with a reason.

    ``blocking_stage`` is set for PREREQUISITE_UNSATISFIED (first unmet
    stage, ascending) and DUPLICATE_ACTION (the already-decided stage).
    ``current_status`` is set for WRONG_LIFECYCLE_STATUS.
    """

    is_ready: bool
    reason: BlockReason | None = None
    blocking_stage: WorkflowStage | None = None
    current_status: VoucherStatus | None = None
    message: str = ""

    @classmethod
    def ready(cls) -> Readiness:
        return cls(is_ready=True, message="Ready")

    @classmethod
    def blocked(
        cls,
        reason: BlockReason,
        *,
        blocking_stage: WorkflowStage | None = None,
        current_status: VoucherStatus | None = None,
        message: str = "",
    ) -> Readiness:
        return cls(
            is_ready=False,
            reason=reason,
            blocking_stage=blocking_stage,
            current_status=current_status,
            message=message,
        )


@dataclass(frozen=True)
class NotAParticipant:
    """The role has no seat in this variant.  A value, not an error."""

    variant: WorkflowVariantKind
    role: str


# =========================================================================
# Applier results
# =========================================================================


@dataclass(frozen=True)
class StageOutcome:
    """Status effect of a decision at a stage."""

    new_status: VoucherStatus
    next_stage: WorkflowStage | None

    @property
    def is_terminal(self) -> bool:
        return self.new_status in TERMINAL_VOUCHER_STATUSES


@dataclass(frozen=True)
class WorkflowNotice:
    """Who should hear about a change once it is committed."""

    voucher_id: UUID
    new_stage: int | None
    next_role: str | None


@dataclass(frozen=True)
class ActionResult:
    """A recorded stage decision and its effect on the voucher."""

    fact: ApprovalFact
    voucher: Voucher
    previous_status: VoucherStatus
    notice: WorkflowNotice

    @property
    def status_changed(self) -> bool:
        return self.voucher.status != self.previous_status


class QuorumVoteOutcome(str, Enum):
    ACCEPTED = "ACCEPTED"
    DUPLICATE = "DUPLICATE"


@dataclass(frozen=True)
class QuorumVoteResult:
    """Outcome of a quorum vote plus the running count."""

    outcome: QuorumVoteOutcome
    voucher_id: UUID
    reviewer_id: UUID
    votes: int
    required: int
    notice: WorkflowNotice | None = None

    @property
    def quorum_reached(self) -> bool:
        return self.votes >= self.required


# =========================================================================
# Outbound collaborators
# =========================================================================


class Notifier(Protocol):
    """Delivers "your turn" notifications.  Fire-and-forget."""

    def notify(
        self,
        voucher_id: UUID,
        new_stage: int | None,
        next_role: str | None,
    ) -> None: ...
