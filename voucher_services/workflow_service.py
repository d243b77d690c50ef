"""
voucher_services.workflow_service -- Inbound surface of the approval engine.

Responsibility:
    One method per inbound operation (create, submit, act, quorum vote,
    cancel, progress, evaluate, threshold, audit trail).  Each call runs in
    its own unit of work: open a session, wire the kernel services onto it,
    validate-then-write, commit, and only then dispatch notifications.

Architecture position:
    Services -- top of the stack.  Owns transaction boundaries; every
    service it constructs is flush-only.

Invariants enforced:
    - One atomic transaction per inbound call.  Validate-then-write is
      never split across two transactions.
    - Any exception rolls back the whole call, including facts already
      flushed by it.
    - Notifications are dispatched after commit, never before, and never
      for a rolled-back call.
    - Every log record emitted during a call carries the correlation id,
      voucher id, actor id and role via ``LogContext``.

Failure modes:
    - Validation errors (``WorkflowError`` subclasses,
      ``ConfigurationError``, ``VoucherNotFoundError``,
      ``ConcurrentStatusChangeError``) propagate unchanged.
    - ``SQLAlchemyError`` is rolled back and re-raised as
      ``TransientStorageError`` with the original chained.

Audit relevance:
    Every successful write produces exactly one hash-chained audit event in
    the same transaction as the write it describes.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from voucher_config import get_workflow_catalog
from voucher_engines.approval import select_variant
from voucher_engines.progress import project
from voucher_kernel.db.engine import session_scope
from voucher_kernel.domain.clock import Clock, SystemClock
from voucher_kernel.domain.progress import VoucherProgress
from voucher_kernel.domain.voucher import (
    ActionResult,
    NotAParticipant,
    Notifier,
    QuorumVoteResult,
    Readiness,
    Voucher,
    WorkflowNotice,
)
from voucher_kernel.domain.workflow import Decision, WorkflowCatalog
from voucher_kernel.exceptions import TransientStorageError, UnauthorizedActorError
from voucher_kernel.logging_config import LogContext, get_logger
from voucher_kernel.selectors.voucher_selector import VoucherSelector
from voucher_kernel.services.auditor_service import AuditorService, AuditTrace
from voucher_kernel.services.quorum_settings_service import QuorumSettingsService
from voucher_kernel.services.voucher_service import VoucherService
from voucher_services.approval_service import ApprovalService
from voucher_services.notification_dispatcher import NotificationDispatcher

logger = get_logger("services.workflow")


@dataclass(frozen=True)
class _UnitOfWork:
    """Kernel services sharing one session for the duration of a call."""

    session: Session
    auditor: AuditorService
    vouchers: VoucherService
    quorum: QuorumSettingsService
    approvals: ApprovalService
    selector: VoucherSelector


class VoucherWorkflowService:
    """Transaction-owning facade over the approval engine.

    Contract:
        Receives a session factory, the compiled workflow catalog, a
        notification dispatcher (or a bare ``Notifier``) and a clock.

    Guarantees:
        - Each public method commits on success and rolls back on failure.
        - A notifier failure never fails the call that triggered it.

    Non-goals:
        - Does NOT authenticate callers; actor ids and roles are trusted.
        - Does NOT retry ``TransientStorageError``; the caller decides.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        catalog: WorkflowCatalog | None = None,
        notifier: Notifier | None = None,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._catalog = catalog or get_workflow_catalog()
        self._dispatcher = dispatcher or NotificationDispatcher(notifier)
        self._clock = clock or SystemClock()

    @property
    def catalog(self) -> WorkflowCatalog:
        return self._catalog

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        voucher_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_role: str | None = None,
    ) -> Iterator[_UnitOfWork]:
        correlation_id = LogContext.get("correlation_id") or str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            voucher_id=voucher_id,
            actor_id=actor_id,
            actor_role=actor_role,
            operation=operation,
        ):
            try:
                with session_scope(self._session_factory) as session:
                    yield self._wire(session)
            except SQLAlchemyError as exc:
                logger.error(
                    "storage_failure",
                    extra={"operation": operation, "error": type(exc).__name__},
                )
                raise TransientStorageError(operation, str(exc)) from exc

    def _wire(self, session: Session) -> _UnitOfWork:
        auditor = AuditorService(session, self._clock)
        vouchers = VoucherService(session, auditor, self._clock)
        quorum = QuorumSettingsService(session, auditor, self._catalog.quorum, self._clock)
        approvals = ApprovalService(
            session, self._catalog, auditor, vouchers, quorum, self._clock,
        )
        return _UnitOfWork(
            session=session,
            auditor=auditor,
            vouchers=vouchers,
            quorum=quorum,
            approvals=approvals,
            selector=VoucherSelector(session),
        )

    def _notify(self, notice: WorkflowNotice | None) -> None:
        if notice is not None:
            self._dispatcher.dispatch(notice)

    # ------------------------------------------------------------------
    # Voucher lifecycle
    # ------------------------------------------------------------------

    def create_voucher(
        self,
        origin_role: str,
        created_by_id: UUID,
        reference: str = "",
    ) -> Voucher:
        with self._unit_of_work(
            "create_voucher", actor_id=created_by_id, actor_role=origin_role,
        ) as uow:
            return uow.vouchers.create_voucher(origin_role, created_by_id, reference)

    def submit(self, voucher_id: UUID, actor_id: UUID, actor_role: str) -> Voucher:
        """DRAFT -> PENDING, then notify the first stage of the variant."""
        with self._unit_of_work("submit", voucher_id, actor_id, actor_role) as uow:
            voucher = uow.vouchers.submit(
                voucher_id, actor_id, actor_role, self._catalog.submit_roles,
            )
        first = select_variant(self._catalog, voucher.origin_role).stages[0]
        self._notify(WorkflowNotice(voucher_id, first.stage, first.role))
        return voucher

    def act(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        actor_role: str,
        decision: Decision | str,
        remarks: str = "",
    ) -> ActionResult:
        with self._unit_of_work("act", voucher_id, actor_id, actor_role) as uow:
            result = uow.approvals.act(voucher_id, actor_id, actor_role, decision, remarks)
        self._notify(result.notice)
        return result

    def cast_quorum_vote(
        self,
        voucher_id: UUID,
        reviewer_id: UUID,
        reviewer_role: str,
        remarks: str = "",
    ) -> QuorumVoteResult:
        with self._unit_of_work(
            "cast_quorum_vote", voucher_id, reviewer_id, reviewer_role,
        ) as uow:
            result = uow.approvals.cast_quorum_vote(
                voucher_id, reviewer_id, reviewer_role, remarks,
            )
        self._notify(result.notice)
        return result

    def cancel(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        actor_role: str,
        reason: str,
    ) -> Voucher:
        with self._unit_of_work("cancel", voucher_id, actor_id, actor_role) as uow:
            voucher = uow.approvals.cancel(voucher_id, actor_id, actor_role, reason)
        self._notify(WorkflowNotice(voucher_id, None, None))
        return voucher

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_voucher(self, voucher_id: UUID) -> Voucher:
        with self._unit_of_work("get_voucher", voucher_id) as uow:
            return uow.selector.get_voucher(voucher_id)

    def get_progress(self, voucher_id: UUID) -> VoucherProgress:
        with self._unit_of_work("get_progress", voucher_id) as uow:
            facts = uow.selector.load_facts(voucher_id)
            threshold = uow.quorum.get_threshold()
        variant = select_variant(self._catalog, facts.voucher.origin_role)
        return project(
            variant,
            facts.voucher,
            facts.approval_facts,
            facts.quorum_reviews,
            threshold,
        )

    def evaluate(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        actor_role: str,
    ) -> Readiness | NotAParticipant:
        with self._unit_of_work("evaluate", voucher_id, actor_id, actor_role) as uow:
            return uow.approvals.evaluate(voucher_id, actor_id, actor_role)

    def get_audit_trail(self, voucher_id: UUID) -> AuditTrace:
        with self._unit_of_work("get_audit_trail", voucher_id) as uow:
            uow.selector.get_voucher(voucher_id)
            return uow.auditor.get_voucher_trace(voucher_id)

    def validate_audit_chain(self) -> bool:
        with self._unit_of_work("validate_audit_chain") as uow:
            return uow.auditor.validate_chain()

    # ------------------------------------------------------------------
    # Quorum threshold
    # ------------------------------------------------------------------

    def get_quorum_threshold(self) -> int:
        with self._unit_of_work("get_quorum_threshold") as uow:
            return uow.quorum.get_threshold()

    def set_quorum_threshold(self, value: int, actor_id: UUID, actor_role: str) -> int:
        """Administrator-only.  Applies to in-flight vouchers immediately."""
        if actor_role not in self._catalog.admin_roles:
            raise UnauthorizedActorError(
                None, actor_role, "only administrators may change the quorum threshold"
            )
        with self._unit_of_work(
            "set_quorum_threshold", actor_id=actor_id, actor_role=actor_role,
        ) as uow:
            return uow.quorum.set_threshold(value, actor_id)

    def shutdown(self) -> None:
        self._dispatcher.shutdown()
