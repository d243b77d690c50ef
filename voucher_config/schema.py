"""
Configuration Schema (``voucher_config.schema``).

Responsibility
--------------
Frozen dataclasses mirroring the YAML workflow catalog, before validation
and compilation into kernel ``WorkflowCatalog`` objects.

Architecture position
---------------------
**Config layer** -- pure data definitions, no behaviour.  Consumed by the
loader (YAML -> schema), the validator and the compiler.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StageDef:
    """One stage of a variant as written in YAML."""

    stage: int
    stage_id: str
    label: str
    role: str
    kind: str = "single"
    status_on_approve: str | None = None


@dataclass(frozen=True)
class VariantDef:
    name: str
    label: str
    stages: tuple[StageDef, ...]
    origin_roles: tuple[str, ...] = ()
    actionable_statuses: tuple[str, ...] = ("PENDING",)


@dataclass(frozen=True)
class QuorumDef:
    setting_key: str = "bac_required_approvals"
    default_threshold: int = 3
    min_threshold: int = 1
    max_threshold: int = 10


@dataclass(frozen=True)
class WorkflowConfigurationSet:
    """The full YAML workflow catalog plus its source checksum."""

    config_id: str
    version: int
    default_variant: str
    variants: tuple[VariantDef, ...]
    quorum: QuorumDef
    admin_roles: tuple[str, ...] = ("ADMIN",)
    submit_roles: tuple[str, ...] = ("ADMIN",)
    checksum: str = ""
