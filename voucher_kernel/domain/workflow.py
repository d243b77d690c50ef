"""
Workflow domain types (``voucher_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing the voucher lifecycle state machine and the
workflow catalog: which roles sit at which stage of which variant, which
stage (if any) is decided by quorum, and what intermediate status a stage's
approval sets.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.  Catalog instances
are built by ``voucher_config`` and consumed by ``voucher_engines``.

Invariants enforced
-------------------
* Lifecycle state machine -- ``VOUCHER_TRANSITIONS`` lists the only valid
  status changes.  Status moves forward along ``FORWARD_STATUS_ORDER`` or
  sideways into REJECTED / CANCELLED.  Terminal states have no outgoing edges.
* One role table per variant -- ``WorkflowVariant.stage_for_role`` is the
  only role -> stage lookup; there is no global stage constant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


# =========================================================================
# Voucher Status Lifecycle
# =========================================================================


class VoucherStatus(str, Enum):
    """Voucher lifecycle states."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    APPROVED = "APPROVED"
    RELEASED = "RELEASED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


FORWARD_STATUS_ORDER: tuple[VoucherStatus, ...] = (
    VoucherStatus.DRAFT,
    VoucherStatus.PENDING,
    VoucherStatus.VALIDATED,
    VoucherStatus.APPROVED,
    VoucherStatus.RELEASED,
)

TERMINAL_VOUCHER_STATUSES: frozenset[VoucherStatus] = frozenset({
    VoucherStatus.RELEASED,
    VoucherStatus.REJECTED,
    VoucherStatus.CANCELLED,
})

_SIDE_EXITS = frozenset({VoucherStatus.REJECTED, VoucherStatus.CANCELLED})


def _forward_from(status: VoucherStatus) -> frozenset[VoucherStatus]:
    position = FORWARD_STATUS_ORDER.index(status)
    return frozenset(FORWARD_STATUS_ORDER[position + 1:])


VOUCHER_TRANSITIONS: dict[VoucherStatus, frozenset[VoucherStatus]] = {
    VoucherStatus.DRAFT: frozenset({VoucherStatus.PENDING}) | _SIDE_EXITS,
    VoucherStatus.PENDING: _forward_from(VoucherStatus.PENDING) | _SIDE_EXITS,
    VoucherStatus.VALIDATED: _forward_from(VoucherStatus.VALIDATED) | _SIDE_EXITS,
    VoucherStatus.APPROVED: _forward_from(VoucherStatus.APPROVED) | _SIDE_EXITS,
    VoucherStatus.RELEASED: frozenset(),
    VoucherStatus.REJECTED: frozenset(),
    VoucherStatus.CANCELLED: frozenset(),
}


def is_valid_transition(current: VoucherStatus, target: VoucherStatus) -> bool:
    """True when ``current -> target`` is an edge of the lifecycle graph."""
    return target in VOUCHER_TRANSITIONS[current]


class Decision(str, Enum):
    """Decision an approver records at a single-approver stage."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Role(str, Enum):
    """Organizational roles known to the municipal finance office."""

    REQUESTER = "REQUESTER"
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD"
    FINANCE_HEAD = "FINANCE_HEAD"
    SECRETARY = "SECRETARY"
    MAYOR = "MAYOR"
    BAC = "BAC"
    BUDGET = "BUDGET"
    ACCOUNTING = "ACCOUNTING"
    TREASURY = "TREASURY"
    GSO = "GSO"
    HR = "HR"
    ADMIN = "ADMIN"


# =========================================================================
# Workflow Catalog
# =========================================================================


class WorkflowVariantKind(str, Enum):
    """Closed set of workflow variants, selected by the voucher's origin role."""

    STANDARD = "STANDARD"
    GSO = "GSO"
    HR = "HR"


class StageKind(str, Enum):
    """How a stage is satisfied."""

    SINGLE = "single"  # one APPROVED fact
    QUORUM = "quorum"  # distinct reviewer count >= threshold


@dataclass(frozen=True)
class WorkflowStage:
    """One numbered step of a variant, owned by exactly one role."""

    stage: int
    stage_id: str
    label: str
    role: str
    kind: StageKind = StageKind.SINGLE
    status_on_approve: VoucherStatus | None = None

    @property
    def is_quorum(self) -> bool:
        return self.kind == StageKind.QUORUM


@dataclass(frozen=True)
class WorkflowVariant:
    """Ordered stage sequence applicable to vouchers of one origin family.

    ``stages`` is sorted ascending by stage number.  ``actionable_statuses``
    are the voucher statuses in which any stage of this variant may act.
    """

    kind: WorkflowVariantKind
    label: str
    stages: tuple[WorkflowStage, ...]
    origin_roles: tuple[str, ...] = ()
    actionable_statuses: frozenset[VoucherStatus] = field(
        default_factory=lambda: frozenset({VoucherStatus.PENDING})
    )

    @property
    def stage_numbers(self) -> tuple[int, ...]:
        return tuple(s.stage for s in self.stages)

    @property
    def last_stage(self) -> WorkflowStage:
        return self.stages[-1]

    @property
    def quorum_stage(self) -> WorkflowStage | None:
        for stage in self.stages:
            if stage.is_quorum:
                return stage
        return None

    @property
    def role_table(self) -> dict[str, int]:
        """Role -> stage number for this variant only."""
        return {s.role: s.stage for s in self.stages}

    def get_stage(self, stage_number: int) -> WorkflowStage:
        for stage in self.stages:
            if stage.stage == stage_number:
                return stage
        raise KeyError(f"{self.kind.value} has no stage {stage_number}")

    def stage_for_role(self, role: str) -> WorkflowStage | None:
        for stage in self.stages:
            if stage.role == role:
                return stage
        return None

    def stages_before(self, stage_number: int) -> tuple[WorkflowStage, ...]:
        return tuple(s for s in self.stages if s.stage < stage_number)

    def next_stage(self, stage_number: int) -> WorkflowStage | None:
        for stage in self.stages:
            if stage.stage > stage_number:
                return stage
        return None


@dataclass(frozen=True)
class QuorumPolicy:
    """Bounds and default for the quorum threshold setting."""

    setting_key: str = "bac_required_approvals"
    default_threshold: int = 3
    min_threshold: int = 1
    max_threshold: int = 10

    def is_within_bounds(self, value: int) -> bool:
        return self.min_threshold <= value <= self.max_threshold


@dataclass(frozen=True)
class WorkflowCatalog:
    """Compiled, immutable set of workflow variants.

    Shared by the prerequisite validator and the progress projector so the
    two always read the same stage tables.
    """

    config_id: str
    version: int
    checksum: str
    variants: tuple[WorkflowVariant, ...]
    default_variant: WorkflowVariantKind
    quorum: QuorumPolicy = field(default_factory=QuorumPolicy)
    admin_roles: frozenset[str] = frozenset({Role.ADMIN.value})
    submit_roles: frozenset[str] = frozenset({Role.ADMIN.value})

    def get(self, kind: WorkflowVariantKind) -> WorkflowVariant:
        for variant in self.variants:
            if variant.kind == kind:
                return variant
        raise KeyError(f"Variant not in catalog: {kind.value}")

    @property
    def origin_index(self) -> dict[str, WorkflowVariantKind]:
        return {
            role: variant.kind
            for variant in self.variants
            for role in variant.origin_roles
        }
