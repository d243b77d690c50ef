"""
Configuration Validator (``voucher_config.validator``).

Responsibility
--------------
Validates a ``WorkflowConfigurationSet`` before it is compiled, so a
malformed stage table can never reach the approval engine.

Invariants enforced
-------------------
* Stage numbers contiguous from 1, listed in ascending order.
* Stage ids and roles unique within a variant (the role table is a function).
* Every role is a known ``Role``; every status a known ``VoucherStatus``.
* At most one quorum stage per variant, never the first or last stage.
* ``status_on_approve`` is non-terminal, never decreases along the stage
  list, and is itself an actionable status of the variant.
* Origin roles are claimed by at most one variant.
* Exactly one variant per ``WorkflowVariantKind``; the default is defined.
* Quorum bounds ``1 <= min <= default <= max``.

Failure modes
-------------
* Errors in ``ConfigValidationResult.errors`` -> the catalog MUST NOT be
  compiled.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from voucher_config.schema import VariantDef, WorkflowConfigurationSet
from voucher_kernel.domain.workflow import (
    FORWARD_STATUS_ORDER,
    TERMINAL_VOUCHER_STATUSES,
    Role,
    StageKind,
    VoucherStatus,
    WorkflowVariantKind,
)

_ROLES = frozenset(r.value for r in Role)
_STATUSES = frozenset(s.value for s in VoucherStatus)
_KINDS = frozenset(k.value for k in StageKind)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_workflow_configuration(
    config: WorkflowConfigurationSet,
) -> ConfigValidationResult:
    """Run every structural check and collect all errors."""
    result = ConfigValidationResult()
    _validate_variant_kinds(config, result)
    _validate_origin_roles(config, result)
    _validate_quorum_bounds(config, result)
    _validate_role_lists(config, result)
    for variant in config.variants:
        _validate_stage_layout(variant, result)
        _validate_stage_statuses(variant, result)
    return result


def _validate_variant_kinds(
    config: WorkflowConfigurationSet, result: ConfigValidationResult
) -> None:
    names = [v.name for v in config.variants]
    for name in names:
        if name not in {k.value for k in WorkflowVariantKind}:
            result.add_error(f"Unknown variant '{name}'")
        if names.count(name) > 1:
            result.add_error(f"Variant '{name}' defined more than once")
    for kind in WorkflowVariantKind:
        if kind.value not in names:
            result.add_error(f"Variant '{kind.value}' is not defined")
    if config.default_variant not in names:
        result.add_error(f"Default variant '{config.default_variant}' is not defined")


def _validate_origin_roles(
    config: WorkflowConfigurationSet, result: ConfigValidationResult
) -> None:
    claimed: dict[str, str] = {}
    for variant in config.variants:
        for role in variant.origin_roles:
            if role not in _ROLES:
                result.add_error(f"{variant.name}: unknown origin role '{role}'")
            if role in claimed and claimed[role] != variant.name:
                result.add_error(
                    f"Origin role '{role}' claimed by both "
                    f"'{claimed[role]}' and '{variant.name}'"
                )
            claimed.setdefault(role, variant.name)


def _validate_quorum_bounds(
    config: WorkflowConfigurationSet, result: ConfigValidationResult
) -> None:
    q = config.quorum
    if not (1 <= q.min_threshold <= q.default_threshold <= q.max_threshold):
        result.add_error(
            "Quorum bounds must satisfy 1 <= min <= default <= max, got "
            f"min={q.min_threshold} default={q.default_threshold} max={q.max_threshold}"
        )
    if not q.setting_key:
        result.add_error("Quorum setting_key must not be empty")


def _validate_role_lists(
    config: WorkflowConfigurationSet, result: ConfigValidationResult
) -> None:
    for label, roles in (("admin_roles", config.admin_roles),
                         ("submit_roles", config.submit_roles)):
        for role in roles:
            if role not in _ROLES:
                result.add_error(f"{label}: unknown role '{role}'")


def _validate_stage_layout(variant: VariantDef, result: ConfigValidationResult) -> None:
    prefix = variant.name
    if not variant.stages:
        result.add_error(f"{prefix}: variant has no stages")
        return

    numbers = [s.stage for s in variant.stages]
    if numbers != list(range(1, len(numbers) + 1)):
        result.add_error(
            f"{prefix}: stage numbers must be 1..{len(numbers)} in order, got {numbers}"
        )

    seen_ids: set[str] = set()
    seen_roles: set[str] = set()
    for stage in variant.stages:
        if stage.stage_id in seen_ids:
            result.add_error(f"{prefix}: duplicate stage_id '{stage.stage_id}'")
        seen_ids.add(stage.stage_id)
        if stage.role in seen_roles:
            result.add_error(f"{prefix}: role '{stage.role}' holds more than one stage")
        seen_roles.add(stage.role)
        if stage.role not in _ROLES:
            result.add_error(f"{prefix}: unknown role '{stage.role}' at stage {stage.stage}")
        if stage.kind not in _KINDS:
            result.add_error(f"{prefix}: unknown stage kind '{stage.kind}'")

    quorum = [s for s in variant.stages if s.kind == StageKind.QUORUM.value]
    if len(quorum) > 1:
        result.add_error(f"{prefix}: more than one quorum stage")
    for stage in quorum:
        if stage.stage == variant.stages[0].stage:
            result.add_error(f"{prefix}: quorum stage cannot be the first stage")
        if stage.stage == variant.stages[-1].stage:
            result.add_error(f"{prefix}: quorum stage cannot be the last stage")


def _validate_stage_statuses(variant: VariantDef, result: ConfigValidationResult) -> None:
    prefix = variant.name
    for status in variant.actionable_statuses:
        if status not in _STATUSES:
            result.add_error(f"{prefix}: unknown actionable status '{status}'")
        elif VoucherStatus(status) in TERMINAL_VOUCHER_STATUSES or status == "DRAFT":
            result.add_error(f"{prefix}: status '{status}' cannot be actionable")

    last_position = FORWARD_STATUS_ORDER.index(VoucherStatus.PENDING)
    for stage in variant.stages:
        if stage.status_on_approve is None:
            continue
        status = stage.status_on_approve
        if status not in _STATUSES:
            result.add_error(f"{prefix}: unknown status_on_approve '{status}'")
            continue
        if VoucherStatus(status) in TERMINAL_VOUCHER_STATUSES:
            result.add_error(
                f"{prefix}: stage {stage.stage} status_on_approve '{status}' is terminal"
            )
            continue
        if stage.kind == StageKind.QUORUM.value:
            result.add_error(f"{prefix}: quorum stage cannot set status_on_approve")
        position = FORWARD_STATUS_ORDER.index(VoucherStatus(status))
        if position < last_position:
            result.add_error(
                f"{prefix}: stage {stage.stage} status_on_approve '{status}' moves backward"
            )
        last_position = max(last_position, position)
        if status not in variant.actionable_statuses:
            result.add_error(
                f"{prefix}: stage {stage.stage} sets '{status}' which is not actionable"
            )
