"""
voucher_services.approval_service -- Stage decisions, quorum votes, cancellation.

Responsibility:
    The effectful half of the approval engine.  Runs Variant Selector ->
    Stage Resolver -> Prerequisite Validator (pure, in voucher_engines) and,
    when the verdict is Ready, the Action Applier: append the fact, move the
    status, write one audit event.

Architecture position:
    Services layer.  May import from voucher_engines/ (pure decisions) and
    voucher_kernel/ (domain, services, selectors, models).

Invariants enforced:
    - Re-validation: ``apply`` reloads the facts under the voucher row lock
      and re-runs ``can_act`` before writing, whoever called it.
    - At most one decision per (voucher, stage) and one vote per
      (voucher, reviewer): inserts run inside a savepoint, and a unique
      violation becomes DuplicateActionError / a DUPLICATE vote result.
    - Status writes are compare-and-swap (VoucherService.transition_status).
    - Exactly one audit event per successful apply, vote or cancellation.
    - Facts are the only decision input; the audit log is never read here.

Failure modes:
    - InvalidDecisionError, UnauthorizedActorError, DuplicateActionError,
      PrerequisiteUnsatisfiedError, WrongLifecycleStatusError,
      QuorumStageActionError, MissingCancellationReasonError,
      ConcurrentStatusChangeError, VoucherNotFoundError.

Audit relevance:
    Each decision is recorded twice: as an append-only fact (decision
    input) and as a hash-chained audit event with before/after snapshots
    (telemetry).
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from voucher_engines.approval import (
    can_act,
    can_cast_quorum_vote,
    resolve_outcome,
    resolve_stage,
    select_variant,
)
from voucher_kernel.domain.clock import Clock, SystemClock
from voucher_kernel.domain.voucher import (
    ActionResult,
    ApprovalFact,
    BlockReason,
    NotAParticipant,
    QuorumVoteOutcome,
    QuorumVoteResult,
    Readiness,
    Voucher,
    WorkflowNotice,
)
from voucher_kernel.domain.workflow import (
    TERMINAL_VOUCHER_STATUSES,
    Decision,
    VoucherStatus,
    WorkflowCatalog,
    WorkflowStage,
    WorkflowVariant,
)
from voucher_kernel.exceptions import (
    DuplicateActionError,
    InvalidDecisionError,
    MissingCancellationReasonError,
    PrerequisiteUnsatisfiedError,
    QuorumStageActionError,
    UnauthorizedActorError,
    WrongLifecycleStatusError,
)
from voucher_kernel.logging_config import get_logger
from voucher_kernel.models.approval import ApprovalFactModel, QuorumReviewModel
from voucher_kernel.selectors.voucher_selector import VoucherSelector
from voucher_kernel.services.auditor_service import AuditorService
from voucher_kernel.services.quorum_settings_service import QuorumSettingsService
from voucher_kernel.services.voucher_service import VoucherService

logger = get_logger("services.approval")


class ApprovalService:
    """
    Applies stage decisions, quorum votes and cancellations to vouchers.

    Contract:
        Receives a Session plus the kernel services sharing it.  Every
        public method validates and writes within the caller's transaction.

    Guarantees:
        - A successful call leaves exactly one new fact (or vote), at most
          one status change, and exactly one audit event in the session.
        - A failed call raises before flushing any fact, or after a
          savepoint rollback of the fact it tried to write.

    Non-goals:
        - Does NOT commit; the workflow service owns the transaction.
        - Does NOT deliver notifications; it returns the notice to send.
    """

    def __init__(
        self,
        session: Session,
        catalog: WorkflowCatalog,
        auditor: AuditorService,
        voucher_service: VoucherService,
        quorum_settings: QuorumSettingsService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._catalog = catalog
        self._auditor = auditor
        self._vouchers = voucher_service
        self._quorum = quorum_settings
        self._clock = clock or SystemClock()
        self._selector = VoucherSelector(session)

    # ------------------------------------------------------------------
    # Read-only check
    # ------------------------------------------------------------------

    def evaluate(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        actor_role: str,
    ) -> Readiness | NotAParticipant:
        """Could ``actor_role`` act on this voucher right now?  No writes."""
        facts = self._selector.load_facts(voucher_id)
        variant = select_variant(self._catalog, facts.voucher.origin_role)
        seat = resolve_stage(variant, actor_role)
        if isinstance(seat, NotAParticipant):
            return seat
        threshold = self._quorum.get_threshold()
        if seat.is_quorum:
            return can_cast_quorum_vote(facts, variant, actor_id, threshold)
        return can_act(facts, variant, seat.stage, threshold)

    # ------------------------------------------------------------------
    # Stage decisions
    # ------------------------------------------------------------------

    def act(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        actor_role: str,
        decision: Decision | str,
        remarks: str = "",
    ) -> ActionResult:
        """
        Record ``decision`` by ``actor_role`` at the stage that role occupies.

        Raises:
            UnauthorizedActorError: the role has no seat in the variant.
            InvalidDecisionError: ``decision`` is not APPROVED or REJECTED.
            QuorumStageActionError: the role's seat is the quorum stage.
            WrongLifecycleStatusError / DuplicateActionError /
            PrerequisiteUnsatisfiedError: the validator blocked the action.
        """
        try:
            decision = Decision(decision)
        except ValueError:
            raise InvalidDecisionError(str(voucher_id), decision) from None

        facts = self._selector.load_facts(voucher_id, for_update=True)
        variant = select_variant(self._catalog, facts.voucher.origin_role)
        stage = self._resolve_seat(variant, voucher_id, actor_role)
        if stage.is_quorum:
            raise QuorumStageActionError(str(voucher_id), stage.stage)

        readiness = can_act(facts, variant, stage.stage, self._quorum.get_threshold())
        self._raise_if_blocked(readiness, voucher_id, stage.stage, "act", actor_role)

        return self.apply(
            voucher_id, variant, stage.stage, decision, actor_id, actor_role, remarks
        )

    def apply(
        self,
        voucher_id: UUID,
        variant: WorkflowVariant,
        target_stage: int,
        decision: Decision,
        actor_id: UUID,
        actor_role: str,
        remarks: str = "",
    ) -> ActionResult:
        """
        Append the fact and compute the new status.

        Re-validates under the row lock before writing, so a caller that
        skipped ``can_act`` (or raced another transaction) cannot slip past.
        """
        facts = self._selector.load_facts(voucher_id, for_update=True)
        readiness = can_act(facts, variant, target_stage, self._quorum.get_threshold())
        self._raise_if_blocked(readiness, voucher_id, target_stage, "act", actor_role)

        before = facts.voucher
        fact = self._insert_fact(voucher_id, target_stage, actor_role, actor_id, decision, remarks)

        outcome = resolve_outcome(variant, target_stage, decision, before.status)
        after = before
        if outcome.new_status != before.status:
            after = self._vouchers.transition_status(
                voucher_id, before.status, outcome.new_status
            )

        self._auditor.record_stage_decision(
            before=before,
            after=after,
            actor_id=actor_id,
            acting_role=actor_role,
            stage=target_stage,
            approved=decision == Decision.APPROVED,
            remarks=remarks,
        )

        logger.info(
            "stage_decision_recorded",
            extra={
                "voucher_id": str(voucher_id),
                "variant": variant.kind.value,
                "stage": target_stage,
                "decision": decision.value,
                "from_status": before.status.value,
                "to_status": after.status.value,
            },
        )

        next_stage = outcome.next_stage
        return ActionResult(
            fact=fact,
            voucher=after,
            previous_status=before.status,
            notice=WorkflowNotice(
                voucher_id=voucher_id,
                new_stage=next_stage.stage if next_stage else None,
                next_role=next_stage.role if next_stage else None,
            ),
        )

    # ------------------------------------------------------------------
    # Quorum stage
    # ------------------------------------------------------------------

    def cast_quorum_vote(
        self,
        voucher_id: UUID,
        reviewer_id: UUID,
        reviewer_role: str,
        remarks: str = "",
    ) -> QuorumVoteResult:
        """
        Record an affirmative quorum vote.

        Returns a DUPLICATE result (no write) when the reviewer already
        voted on this voucher.

        Raises:
            UnauthorizedActorError: the variant has no quorum stage, or the
                reviewer's role does not hold the quorum seat.
            WrongLifecycleStatusError / PrerequisiteUnsatisfiedError.
        """
        facts = self._selector.load_facts(voucher_id, for_update=True)
        variant = select_variant(self._catalog, facts.voucher.origin_role)
        stage = variant.quorum_stage
        if stage is None:
            raise UnauthorizedActorError(
                str(voucher_id), reviewer_role,
                f"{variant.kind.value} vouchers have no quorum stage",
            )
        if reviewer_role != stage.role:
            raise UnauthorizedActorError(
                str(voucher_id), reviewer_role,
                f"only {stage.role} members vote at stage {stage.stage}",
            )

        threshold = self._quorum.get_threshold()
        readiness = can_cast_quorum_vote(facts, variant, reviewer_id, threshold)
        if readiness.reason == BlockReason.DUPLICATE_ACTION:
            logger.info(
                "quorum_vote_duplicate",
                extra={"voucher_id": str(voucher_id), "reviewer_id": str(reviewer_id)},
            )
            return QuorumVoteResult(
                outcome=QuorumVoteOutcome.DUPLICATE,
                voucher_id=voucher_id,
                reviewer_id=reviewer_id,
                votes=facts.quorum_count,
                required=threshold,
            )
        self._raise_if_blocked(readiness, voucher_id, stage.stage, "vote", reviewer_role)

        if not self._insert_vote(voucher_id, reviewer_id, remarks):
            return QuorumVoteResult(
                outcome=QuorumVoteOutcome.DUPLICATE,
                voucher_id=voucher_id,
                reviewer_id=reviewer_id,
                votes=len(self._selector.get_quorum_reviews(voucher_id)),
                required=threshold,
            )

        votes = facts.quorum_count + 1
        self._auditor.record_quorum_vote(
            voucher=facts.voucher,
            reviewer_id=reviewer_id,
            stage=stage.stage,
            votes=votes,
            required=threshold,
        )

        notice = None
        if facts.quorum_count < threshold <= votes:
            next_stage = variant.next_stage(stage.stage)
            notice = WorkflowNotice(
                voucher_id=voucher_id,
                new_stage=next_stage.stage if next_stage else None,
                next_role=next_stage.role if next_stage else None,
            )

        logger.info(
            "quorum_vote_recorded",
            extra={
                "voucher_id": str(voucher_id),
                "reviewer_id": str(reviewer_id),
                "votes": votes,
                "required": threshold,
                "quorum_reached": votes >= threshold,
            },
        )
        return QuorumVoteResult(
            outcome=QuorumVoteOutcome.ACCEPTED,
            voucher_id=voucher_id,
            reviewer_id=reviewer_id,
            votes=votes,
            required=threshold,
            notice=notice,
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        actor_role: str,
        reason: str,
    ) -> Voucher:
        """
        Administrator-only move to CANCELLED from any non-terminal status.

        No prerequisite check.  The status write is a compare-and-swap, so
        a voucher released by a concurrent transaction is never cancelled.
        """
        if actor_role not in self._catalog.admin_roles:
            raise UnauthorizedActorError(
                str(voucher_id), actor_role, "only administrators may cancel"
            )
        if not reason or not reason.strip():
            raise MissingCancellationReasonError(str(voucher_id))

        before = self._selector.get_voucher(voucher_id, for_update=True)
        if before.status in TERMINAL_VOUCHER_STATUSES:
            raise WrongLifecycleStatusError(str(voucher_id), before.status.value, "cancel")

        after = self._vouchers.transition_status(
            voucher_id, before.status, VoucherStatus.CANCELLED
        )
        self._auditor.record_voucher_cancelled(before, after, actor_id, reason.strip())

        logger.info(
            "voucher_cancelled",
            extra={"voucher_id": str(voucher_id), "from_status": before.status.value},
        )
        return after

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_seat(
        self,
        variant: WorkflowVariant,
        voucher_id: UUID,
        actor_role: str,
    ) -> WorkflowStage:
        seat = resolve_stage(variant, actor_role)
        if isinstance(seat, NotAParticipant):
            raise UnauthorizedActorError(
                str(voucher_id), actor_role,
                f"no seat in the {variant.kind.value} workflow",
            )
        return seat

    def _raise_if_blocked(
        self,
        readiness: Readiness,
        voucher_id: UUID,
        target_stage: int,
        operation: str,
        actor_role: str,
    ) -> None:
        if readiness.is_ready:
            return

        logger.info(
            "action_blocked",
            extra={
                "voucher_id": str(voucher_id),
                "target_stage": target_stage,
                "reason": readiness.reason.value,
                "actor_role": actor_role,
            },
        )
        if readiness.reason == BlockReason.WRONG_LIFECYCLE_STATUS:
            raise WrongLifecycleStatusError(
                str(voucher_id), readiness.current_status.value, operation
            )
        if readiness.reason == BlockReason.DUPLICATE_ACTION:
            raise DuplicateActionError(str(voucher_id), target_stage)
        blocking = readiness.blocking_stage
        raise PrerequisiteUnsatisfiedError(
            str(voucher_id), target_stage, blocking.stage, blocking.stage_id
        )

    def _insert_fact(
        self,
        voucher_id: UUID,
        stage: int,
        acting_role: str,
        actor_id: UUID,
        decision: Decision,
        remarks: str,
    ) -> ApprovalFact:
        model = ApprovalFactModel(
            fact_id=uuid4(),
            voucher_id=voucher_id,
            stage=stage,
            acting_role=acting_role,
            actor_id=actor_id,
            decision=decision.value,
            remarks=remarks,
            decided_at=self._clock.now(),
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(model)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "approval_fact_conflict",
                extra={"voucher_id": str(voucher_id), "stage": stage},
            )
            raise DuplicateActionError(str(voucher_id), stage) from None
        return model.to_dto()

    def _insert_vote(self, voucher_id: UUID, reviewer_id: UUID, remarks: str) -> bool:
        """Insert a vote; False when the (voucher, reviewer) pair already exists."""
        savepoint = self._session.begin_nested()
        try:
            self._session.add(QuorumReviewModel(
                review_id=uuid4(),
                voucher_id=voucher_id,
                reviewer_id=reviewer_id,
                remarks=remarks,
                decided_at=self._clock.now(),
            ))
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "quorum_vote_conflict",
                extra={"voucher_id": str(voucher_id), "reviewer_id": str(reviewer_id)},
            )
            return False
        return True
