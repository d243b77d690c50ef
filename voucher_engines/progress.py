"""
voucher_engines.progress -- Pure progress projection.

Responsibility:
    Re-derive, from approval facts and quorum reviews alone, the ordered
    per-stage display state of a voucher: completed, current, pending or
    rejected.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Uses the same per-stage rule as the prerequisite validator
      (``satisfied_stages``), so the two never disagree.
    - At most one ``current`` stage; it is the first non-completed stage.
      A DRAFT voucher has none, since nobody can act before submission.
    - REJECTED / CANCELLED vouchers show every non-completed stage as
      ``rejected``.
    - Idempotent: identical inputs give identical output, every time.
"""

from __future__ import annotations

from collections.abc import Iterable

from voucher_kernel.domain.progress import StageProgress, StageState, VoucherProgress
from voucher_kernel.domain.voucher import (
    ApprovalFact,
    QuorumReviewFact,
    Voucher,
    VoucherFacts,
)
from voucher_kernel.domain.workflow import Decision, VoucherStatus, WorkflowVariant
from voucher_engines.approval import satisfied_stages

_HALTED = frozenset({VoucherStatus.REJECTED, VoucherStatus.CANCELLED})


def project(
    variant: WorkflowVariant,
    voucher: Voucher,
    approval_facts: Iterable[ApprovalFact],
    quorum_reviews: Iterable[QuorumReviewFact],
    quorum_threshold: int,
) -> VoucherProgress:
    """Project the per-stage progress of ``voucher`` under ``variant``."""
    facts = VoucherFacts(
        voucher=voucher,
        approval_facts=tuple(approval_facts),
        quorum_reviews=tuple(
            sorted(quorum_reviews, key=lambda r: (r.decided_at, str(r.reviewer_id)))
        ),
    )
    done = satisfied_stages(variant, facts, quorum_threshold)
    halted = voucher.status in _HALTED
    can_have_current = not halted and voucher.status != VoucherStatus.DRAFT

    rows: list[StageProgress] = []
    current_assigned = False
    for stage in variant.stages:
        if stage.stage in done:
            state = StageState.COMPLETED
        elif halted:
            state = StageState.REJECTED
        elif can_have_current and not current_assigned:
            state = StageState.CURRENT
            current_assigned = True
        else:
            state = StageState.PENDING

        if stage.is_quorum:
            reviewers = tuple(dict.fromkeys(r.reviewer_id for r in facts.quorum_reviews))
            rows.append(StageProgress(
                stage=stage.stage,
                stage_id=stage.stage_id,
                label=stage.label,
                role=stage.role,
                state=state,
                completed_by=reviewers,
                quorum_votes=len(reviewers),
                quorum_required=quorum_threshold,
            ))
        else:
            fact = facts.fact_at(stage.stage)
            approver = (
                (fact.actor_id,)
                if fact is not None and fact.decision == Decision.APPROVED
                else ()
            )
            rows.append(StageProgress(
                stage=stage.stage,
                stage_id=stage.stage_id,
                label=stage.label,
                role=stage.role,
                state=state,
                completed_by=approver,
            ))

    return VoucherProgress(
        voucher_id=voucher.voucher_id,
        variant=variant.kind,
        status=voucher.status,
        stages=tuple(rows),
    )
