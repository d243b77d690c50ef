"""
voucher_engines.approval -- Pure approval workflow decision engine.

Responsibility:
    Select a voucher's workflow variant, resolve the stage an acting role
    occupies, decide whether that stage may act now, and compute the status
    effect of a decision.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import voucher_kernel/domain/ types.

Invariants enforced:
    - Variant dispatch happens once, in ``select_variant``.  Every other
      function receives the variant and consults only its stage table.
    - Deterministic check order in ``can_act``: lifecycle status, then
      duplicate decision, then earlier stages ascending.  The first unmet
      stage is the one reported.
    - Ordering: a stage is ready only when every earlier stage of its
      variant is satisfied (quorum stages by distinct reviewer count).
    - Forward-only status: ``resolve_outcome`` never returns a status that
      precedes the current one.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - KeyError if a stage number is not part of the variant.
    - ValueError if a quorum stage is passed where a single-approver stage
      is required, or a variant without a quorum stage is asked for one.
"""

from __future__ import annotations

from uuid import UUID

from voucher_kernel.domain.voucher import (
    BlockReason,
    NotAParticipant,
    Readiness,
    StageOutcome,
    VoucherFacts,
)
from voucher_kernel.domain.workflow import (
    FORWARD_STATUS_ORDER,
    Decision,
    VoucherStatus,
    WorkflowCatalog,
    WorkflowStage,
    WorkflowVariant,
)


def select_variant(catalog: WorkflowCatalog, origin_role: str) -> WorkflowVariant:
    """Pick the variant for a voucher created by ``origin_role``.

    Roles not claimed by any variant fall back to the catalog default
    (STANDARD).  There are no error cases.
    """
    kind = catalog.origin_index.get(origin_role, catalog.default_variant)
    return catalog.get(kind)


def resolve_stage(
    variant: WorkflowVariant,
    acting_role: str,
) -> WorkflowStage | NotAParticipant:
    """Return the stage ``acting_role`` occupies in ``variant``.

    ``NotAParticipant`` means the role has no approval authority on vouchers
    of this variant.  It is a value so callers can surface it separately
    from unmet prerequisites.
    """
    stage = variant.stage_for_role(acting_role)
    if stage is None:
        return NotAParticipant(variant=variant.kind, role=acting_role)
    return stage


def is_stage_satisfied(
    stage: WorkflowStage,
    facts: VoucherFacts,
    quorum_threshold: int,
) -> bool:
    """Per-stage completion rule.

    Quorum stage: distinct reviewers >= threshold.
    Any other stage: an APPROVED fact exists at that stage.
    """
    if stage.is_quorum:
        return facts.quorum_count >= quorum_threshold
    return facts.is_approved(stage.stage)


def satisfied_stages(
    variant: WorkflowVariant,
    facts: VoucherFacts,
    quorum_threshold: int,
) -> frozenset[int]:
    """Stage numbers of ``variant`` that are satisfied by ``facts``.

    A quorum stage stays satisfied once any later stage has an APPROVED
    fact, even if the threshold was raised afterwards.
    """
    done: set[int] = set()
    for stage in variant.stages:
        if is_stage_satisfied(stage, facts, quorum_threshold):
            done.add(stage.stage)
        elif stage.is_quorum and any(
            facts.is_approved(later.stage)
            for later in variant.stages
            if later.stage > stage.stage
        ):
            done.add(stage.stage)
    return frozenset(done)


def first_unsatisfied_before(
    variant: WorkflowVariant,
    facts: VoucherFacts,
    target_stage: int,
    quorum_threshold: int,
) -> WorkflowStage | None:
    """First stage (ascending) before ``target_stage`` that is not satisfied."""
    done = satisfied_stages(variant, facts, quorum_threshold)
    for stage in variant.stages_before(target_stage):
        if stage.stage not in done:
            return stage
    return None


def _lifecycle_block(variant: WorkflowVariant, facts: VoucherFacts) -> Readiness | None:
    status = facts.voucher.status
    if status in variant.actionable_statuses:
        return None
    return Readiness.blocked(
        BlockReason.WRONG_LIFECYCLE_STATUS,
        current_status=status,
        message=f"Voucher status {status.value} is not actionable",
    )


def can_act(
    facts: VoucherFacts,
    variant: WorkflowVariant,
    target_stage: int,
    quorum_threshold: int,
) -> Readiness:
    """Decide whether a single-approver stage may record a decision now.

    Args:
        facts: Voucher snapshot plus its approval facts and quorum reviews.
        variant: The voucher's workflow variant.
        target_stage: Stage number the actor occupies.
        quorum_threshold: Current quorum threshold (read at evaluation time).

    Returns:
        ``Readiness.ready()`` or a blocked verdict carrying
        WRONG_LIFECYCLE_STATUS, DUPLICATE_ACTION or PREREQUISITE_UNSATISFIED.
    """
    stage = variant.get_stage(target_stage)
    if stage.is_quorum:
        raise ValueError(
            f"Stage {target_stage} of {variant.kind.value} is a quorum stage"
        )

    blocked = _lifecycle_block(variant, facts)
    if blocked is not None:
        return blocked

    if facts.fact_at(target_stage) is not None:
        return Readiness.blocked(
            BlockReason.DUPLICATE_ACTION,
            blocking_stage=stage,
            message=f"Stage {target_stage} already decided",
        )

    unmet = first_unsatisfied_before(variant, facts, target_stage, quorum_threshold)
    if unmet is not None:
        return Readiness.blocked(
            BlockReason.PREREQUISITE_UNSATISFIED,
            blocking_stage=unmet,
            message=f"Waiting on stage {unmet.stage} ({unmet.stage_id})",
        )

    return Readiness.ready()


def can_cast_quorum_vote(
    facts: VoucherFacts,
    variant: WorkflowVariant,
    reviewer_id: UUID,
    quorum_threshold: int,
) -> Readiness:
    """Decide whether ``reviewer_id`` may vote at the variant's quorum stage.

    Same order as ``can_act``: lifecycle, duplicate reviewer, then the
    stages before the quorum stage.
    """
    stage = variant.quorum_stage
    if stage is None:
        raise ValueError(f"{variant.kind.value} has no quorum stage")

    blocked = _lifecycle_block(variant, facts)
    if blocked is not None:
        return blocked

    if reviewer_id in facts.quorum_reviewers:
        return Readiness.blocked(
            BlockReason.DUPLICATE_ACTION,
            blocking_stage=stage,
            message="Reviewer already voted",
        )

    unmet = first_unsatisfied_before(variant, facts, stage.stage, quorum_threshold)
    if unmet is not None:
        return Readiness.blocked(
            BlockReason.PREREQUISITE_UNSATISFIED,
            blocking_stage=unmet,
            message=f"Waiting on stage {unmet.stage} ({unmet.stage_id})",
        )

    return Readiness.ready()


def resolve_outcome(
    variant: WorkflowVariant,
    target_stage: int,
    decision: Decision,
    current_status: VoucherStatus,
) -> StageOutcome:
    """Status effect of ``decision`` at ``target_stage``.

    - REJECTED at any stage -> REJECTED (terminal).
    - APPROVED at the last stage -> RELEASED.
    - APPROVED elsewhere -> the stage's configured ``status_on_approve``
      when it moves forward, otherwise the current status.
    """
    stage = variant.get_stage(target_stage)

    if decision == Decision.REJECTED:
        return StageOutcome(new_status=VoucherStatus.REJECTED, next_stage=None)

    if stage.stage == variant.last_stage.stage:
        return StageOutcome(new_status=VoucherStatus.RELEASED, next_stage=None)

    new_status = current_status
    if stage.status_on_approve is not None and _is_forward(
        current_status, stage.status_on_approve
    ):
        new_status = stage.status_on_approve

    return StageOutcome(new_status=new_status, next_stage=variant.next_stage(stage.stage))


def _is_forward(current: VoucherStatus, target: VoucherStatus) -> bool:
    if current not in FORWARD_STATUS_ORDER or target not in FORWARD_STATUS_ORDER:
        return False
    return FORWARD_STATUS_ORDER.index(target) > FORWARD_STATUS_ORDER.index(current)
