"""
Workflow Catalog Compiler (``voucher_config.compiler``).

Responsibility
--------------
Turns a validated ``WorkflowConfigurationSet`` into the immutable kernel
``WorkflowCatalog`` consumed by the approval engine and the progress
projector.

Invariants enforced
-------------------
* A catalog is only produced from a configuration with zero validation
  errors.
* The compiled catalog carries the source checksum unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass

from voucher_config.schema import VariantDef, WorkflowConfigurationSet
from voucher_config.validator import validate_workflow_configuration
from voucher_kernel.domain.workflow import (
    QuorumPolicy,
    StageKind,
    VoucherStatus,
    WorkflowCatalog,
    WorkflowStage,
    WorkflowVariant,
    WorkflowVariantKind,
)
from voucher_kernel.exceptions import VoucherKernelError


@dataclass(frozen=True)
class CompilationError:
    """An error found during compilation."""

    category: str  # "validation", "variant"
    message: str
    variant_name: str = ""
    severity: str = "error"


class CompilationFailedError(VoucherKernelError):
    """Compilation produced errors that prevent creating a catalog."""

    code: str = "COMPILATION_FAILED"

    def __init__(self, errors: list[CompilationError]):
        self.errors = errors
        messages = [f"  [{e.category}] {e.message}" for e in errors if e.severity == "error"]
        super().__init__(
            f"Compilation failed with {len(messages)} error(s):\n" + "\n".join(messages)
        )


def _compile_variant(variant: VariantDef) -> WorkflowVariant:
    return WorkflowVariant(
        kind=WorkflowVariantKind(variant.name),
        label=variant.label,
        stages=tuple(
            WorkflowStage(
                stage=s.stage,
                stage_id=s.stage_id,
                label=s.label,
                role=s.role,
                kind=StageKind(s.kind),
                status_on_approve=(
                    VoucherStatus(s.status_on_approve) if s.status_on_approve else None
                ),
            )
            for s in sorted(variant.stages, key=lambda s: s.stage)
        ),
        origin_roles=variant.origin_roles,
        actionable_statuses=frozenset(VoucherStatus(s) for s in variant.actionable_statuses),
    )


def compile_workflow_catalog(config: WorkflowConfigurationSet) -> WorkflowCatalog:
    """Validate and compile ``config``.

    Raises:
        CompilationFailedError: if validation reports any error.
    """
    validation = validate_workflow_configuration(config)
    if not validation.is_valid:
        raise CompilationFailedError([
            CompilationError(category="validation", message=msg)
            for msg in validation.errors
        ])

    q = config.quorum
    return WorkflowCatalog(
        config_id=config.config_id,
        version=config.version,
        checksum=config.checksum,
        variants=tuple(_compile_variant(v) for v in config.variants),
        default_variant=WorkflowVariantKind(config.default_variant),
        quorum=QuorumPolicy(
            setting_key=q.setting_key,
            default_threshold=q.default_threshold,
            min_threshold=q.min_threshold,
            max_threshold=q.max_threshold,
        ),
        admin_roles=frozenset(config.admin_roles),
        submit_roles=frozenset(config.submit_roles),
    )
