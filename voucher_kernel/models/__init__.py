"""ORM models for the voucher kernel."""

from voucher_kernel.models.approval import ApprovalFactModel, QuorumReviewModel
from voucher_kernel.models.audit_event import AuditAction, AuditEvent
from voucher_kernel.models.sequence import SequenceCounter
from voucher_kernel.models.system_setting import SystemSettingModel
from voucher_kernel.models.voucher import VoucherModel

__all__ = [
    "ApprovalFactModel",
    "AuditAction",
    "AuditEvent",
    "QuorumReviewModel",
    "SequenceCounter",
    "SystemSettingModel",
    "VoucherModel",
]
