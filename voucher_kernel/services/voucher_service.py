"""
VoucherService -- voucher creation, submission and status writes.

Responsibility:
    Owns the voucher row: creates vouchers in DRAFT, submits them to
    PENDING, and performs every later status change as a compare-and-swap
    on the current status.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the approval service
    (stage outcomes, cancellation) and by the workflow service (create,
    submit).

Invariants enforced:
    - Lifecycle graph: a status write must be an edge of
      ``VOUCHER_TRANSITIONS``.  Status never moves backward.
    - Compare-and-swap: ``UPDATE vouchers SET status = new WHERE
      voucher_id = id AND status = expected``.  Zero rows updated means
      another transaction changed the status first.

Failure modes:
    - VoucherNotFoundError: unknown voucher id.
    - InvalidStatusTransitionError: backward or out-of-graph transition.
    - ConcurrentStatusChangeError: CAS lost.
    - UnauthorizedActorError: submit by someone other than the owner or a
      submit role.
    - WrongLifecycleStatusError: submit of a voucher that is not DRAFT.
"""

from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.orm import Session

from voucher_kernel.domain.clock import Clock, SystemClock
from voucher_kernel.domain.voucher import Voucher
from voucher_kernel.domain.workflow import VoucherStatus, is_valid_transition
from voucher_kernel.exceptions import (
    ConcurrentStatusChangeError,
    InvalidStatusTransitionError,
    UnauthorizedActorError,
    WrongLifecycleStatusError,
)
from voucher_kernel.logging_config import get_logger
from voucher_kernel.models.voucher import VoucherModel
from voucher_kernel.selectors.voucher_selector import VoucherSelector
from voucher_kernel.services.auditor_service import AuditorService

logger = get_logger("services.voucher")


class VoucherService:
    """
    Service for the voucher record and its status field.

    Contract:
        Every status change in the system goes through
        ``transition_status``.

    Non-goals:
        - Does NOT decide whether a stage may act (voucher_engines does).
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._selector = VoucherSelector(session)

    def create_voucher(
        self,
        origin_role: str,
        created_by_id: UUID,
        reference: str = "",
        voucher_id: UUID | None = None,
    ) -> Voucher:
        """Create a DRAFT voucher owned by ``created_by_id``."""
        now = self._clock.now()
        model = VoucherModel(
            voucher_id=voucher_id or uuid4(),
            reference=reference,
            origin_role=origin_role,
            created_by_id=created_by_id,
            status=VoucherStatus.DRAFT.value,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        self._session.flush()

        voucher = model.to_dto()
        self._auditor.record_voucher_created(voucher, created_by_id)

        logger.info(
            "voucher_created",
            extra={
                "voucher_id": str(voucher.voucher_id),
                "origin_role": origin_role,
            },
        )
        return voucher

    def get_voucher(self, voucher_id: UUID) -> Voucher:
        return self._selector.get_voucher(voucher_id)

    def submit(
        self,
        voucher_id: UUID,
        actor_id: UUID,
        actor_role: str,
        submit_roles: frozenset[str] = frozenset(),
    ) -> Voucher:
        """Move a DRAFT voucher to PENDING.

        Allowed for the voucher's owner or any role in ``submit_roles``.
        """
        before = self._selector.get_voucher(voucher_id, for_update=True)

        if before.created_by_id != actor_id and actor_role not in submit_roles:
            raise UnauthorizedActorError(
                str(voucher_id), actor_role, "only the owner may submit"
            )
        if before.status != VoucherStatus.DRAFT:
            raise WrongLifecycleStatusError(
                str(voucher_id), before.status.value, "submit"
            )

        after = self.transition_status(voucher_id, before.status, VoucherStatus.PENDING)
        self._auditor.record_voucher_submitted(before, after, actor_id)

        logger.info("voucher_submitted", extra={"voucher_id": str(voucher_id)})
        return after

    def transition_status(
        self,
        voucher_id: UUID,
        expected: VoucherStatus,
        new_status: VoucherStatus,
    ) -> Voucher:
        """
        Compare-and-swap the voucher status.

        Preconditions:
            - ``expected -> new_status`` is an edge of the lifecycle graph.

        Postconditions:
            - The row's status is ``new_status`` and the returned DTO is
              freshly loaded.

        Raises:
            InvalidStatusTransitionError: ``expected -> new_status`` is not
                allowed.
            ConcurrentStatusChangeError: the row no longer has ``expected``.
        """
        if not is_valid_transition(expected, new_status):
            raise InvalidStatusTransitionError(
                str(voucher_id), expected.value, new_status.value
            )

        result = self._session.execute(
            update(VoucherModel)
            .where(
                VoucherModel.voucher_id == voucher_id,
                VoucherModel.status == expected.value,
            )
            .values(status=new_status.value, updated_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            actual = self._selector.get_voucher(voucher_id)
            logger.warning(
                "voucher_status_cas_lost",
                extra={
                    "voucher_id": str(voucher_id),
                    "expected_status": expected.value,
                    "actual_status": actual.status.value,
                },
            )
            raise ConcurrentStatusChangeError(
                str(voucher_id), expected.value, actual.status.value
            )

        after = self._selector.get_voucher(voucher_id)
        logger.info(
            "voucher_status_changed",
            extra={
                "voucher_id": str(voucher_id),
                "from_status": expected.value,
                "to_status": new_status.value,
            },
        )
        return after
