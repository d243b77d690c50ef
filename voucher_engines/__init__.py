"""
Module: voucher_engines
Responsibility:
    Package entrypoint re-exporting the pure approval workflow engines.
    Canonical import surface for the kernel services and voucher_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import voucher_kernel/domain (and sibling engine modules).
    MUST NOT import voucher_services.

Invariants enforced:
    - Purity: engines never read the clock or the database.  Quorum
      thresholds and facts are passed in by the caller.
    - Determinism: identical inputs always produce identical outputs.
"""

from voucher_engines.approval import (
    can_act,
    can_cast_quorum_vote,
    first_unsatisfied_before,
    is_stage_satisfied,
    resolve_outcome,
    resolve_stage,
    satisfied_stages,
    select_variant,
)
from voucher_engines.progress import project

__all__ = [
    "can_act",
    "can_cast_quorum_vote",
    "first_unsatisfied_before",
    "is_stage_satisfied",
    "project",
    "resolve_outcome",
    "resolve_stage",
    "satisfied_stages",
    "select_variant",
]
