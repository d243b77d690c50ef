"""
Voucher Kernel - disbursement voucher approval core

A role-gated, append-only approval system with:
- Variant-specific stage chains (STANDARD, GSO, HR)
- Quorum review stage with a runtime-adjustable threshold
- Atomic validate-then-write transactions
- Full auditability via hash chain
"""

__version__ = "0.1.0"
