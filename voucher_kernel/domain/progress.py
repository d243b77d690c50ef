"""
Progress projection types (``voucher_kernel.domain.progress``).

Read-only view of per-stage completion, recomputed from facts on every read.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from voucher_kernel.domain.workflow import VoucherStatus, WorkflowVariantKind


class StageState(str, Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    PENDING = "pending"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StageProgress:
    """Display state of one stage.

    ``completed_by`` holds the approver (single stage) or the distinct
    reviewers (quorum stage).  ``quorum_votes`` / ``quorum_required`` are
    only set on the quorum stage.
    """

    stage: int
    stage_id: str
    label: str
    role: str
    state: StageState
    completed_by: tuple[UUID, ...] = ()
    quorum_votes: int | None = None
    quorum_required: int | None = None


@dataclass(frozen=True)
class VoucherProgress:
    voucher_id: UUID
    variant: WorkflowVariantKind
    status: VoucherStatus
    stages: tuple[StageProgress, ...]

    @property
    def current_stage(self) -> StageProgress | None:
        for stage in self.stages:
            if stage.state == StageState.CURRENT:
                return stage
        return None

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.stages if s.state == StageState.COMPLETED)

    @property
    def percent_complete(self) -> int:
        if not self.stages:
            return 0
        return (self.completed_count * 100) // len(self.stages)

    def states(self) -> tuple[StageState, ...]:
        return tuple(s.state for s in self.stages)
