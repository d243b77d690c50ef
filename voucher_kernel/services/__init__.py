"""Flush-only kernel services.  The caller owns every transaction."""

from voucher_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from voucher_kernel.services.quorum_settings_service import QuorumSettingsService
from voucher_kernel.services.sequence_service import SequenceService
from voucher_kernel.services.voucher_service import VoucherService

__all__ = [
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "QuorumSettingsService",
    "SequenceService",
    "VoucherService",
]
