"""
voucher_services -- Transaction-owning services over the voucher kernel.

``VoucherWorkflowService`` is the inbound surface.  ``ApprovalService`` is
the flush-only action applier it wires per call, and
``NotificationDispatcher`` delivers post-commit notices.
"""

from voucher_services.approval_service import ApprovalService
from voucher_services.notification_dispatcher import (
    LoggingNotifier,
    NotificationDispatcher,
)
from voucher_services.workflow_service import VoucherWorkflowService

__all__ = [
    "ApprovalService",
    "LoggingNotifier",
    "NotificationDispatcher",
    "VoucherWorkflowService",
]
