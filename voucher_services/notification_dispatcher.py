"""
voucher_services.notification_dispatcher -- Post-commit "your turn" delivery.

Responsibility:
    Hands committed workflow notices to a ``Notifier`` on a background
    worker so slow or failing delivery never holds a voucher transaction
    open and never reaches the caller.

Architecture position:
    Services -- outbound adapter.  Imports only kernel domain and logging.

Invariants enforced:
    - Notices are dispatched only after commit (the workflow service calls
      ``dispatch`` after its unit of work has exited cleanly).
    - Delivery failures are logged as ``notification_failed`` and
      swallowed; they never roll back or fail an approval.

Failure modes:
    - RuntimeError from ``dispatch`` after ``shutdown``.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from uuid import UUID

from voucher_kernel.domain.voucher import Notifier, WorkflowNotice
from voucher_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class LoggingNotifier:
    """Default notifier: records the notice in the structured log."""

    def notify(
        self,
        voucher_id: UUID,
        new_stage: int | None,
        next_role: str | None,
    ) -> None:
        logger.info(
            "workflow_notification",
            extra={
                "voucher_id": str(voucher_id),
                "new_stage": new_stage,
                "next_role": next_role,
            },
        )


class NotificationDispatcher:
    """Fire-and-forget delivery of WorkflowNotice values.

    Contract:
        ``dispatch`` returns immediately with a Future that resolves to
        True on delivery and False on a logged failure.  It never raises
        for a notifier error.

    Non-goals:
        - Does NOT retry; delivery is best-effort.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        executor: Executor | None = None,
        max_workers: int = 2,
    ):
        self._notifier = notifier or LoggingNotifier()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="voucher-notify",
        )
        self._pending: set[Future] = set()

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    def dispatch(self, notice: WorkflowNotice) -> Future:
        future = self._executor.submit(self._deliver, notice)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return future

    def _deliver(self, notice: WorkflowNotice) -> bool:
        try:
            self._notifier.notify(notice.voucher_id, notice.new_stage, notice.next_role)
        except Exception:
            logger.warning(
                "notification_failed",
                extra={
                    "voucher_id": str(notice.voucher_id),
                    "new_stage": notice.new_stage,
                    "next_role": notice.next_role,
                },
                exc_info=True,
            )
            return False
        return True

    def drain(self, timeout: float | None = None) -> None:
        """Block until every dispatched notice has been attempted."""
        wait(list(self._pending), timeout=timeout)

    def shutdown(self, wait_for_pending: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait_for_pending)
