"""
Configuration Loader (``voucher_config.loader``).

Responsibility
--------------
Loads the YAML workflow catalog and parses it into typed
``voucher_config.schema`` dataclasses.  Build/test tooling: runtime code
obtains the compiled catalog through ``voucher_config.get_workflow_catalog()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrong value types  -> ``ValueError``.

Audit relevance
---------------
``compute_checksum`` gives a deterministic SHA-256 of the parsed catalog,
so the compiled catalog can be traced to an exact YAML baseline.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from voucher_config.schema import (
    QuorumDef,
    StageDef,
    VariantDef,
    WorkflowConfigurationSet,
)
from voucher_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer, got {value!r}")
    return value


def parse_stage(data: dict[str, Any]) -> StageDef:
    return StageDef(
        stage=_parse_int(data["stage"], "stage"),
        stage_id=data["stage_id"],
        label=data["label"],
        role=data["role"],
        kind=data.get("kind", "single"),
        status_on_approve=data.get("status_on_approve"),
    )


def parse_variant(data: dict[str, Any]) -> VariantDef:
    """
    Parse a ``VariantDef`` from a dict.

    Stages are kept in YAML order; ordering and contiguity are checked by
    the validator, not silently fixed here.
    """
    return VariantDef(
        name=data["name"],
        label=data.get("label", data["name"]),
        stages=tuple(parse_stage(s) for s in data["stages"]),
        origin_roles=tuple(data.get("origin_roles") or ()),
        actionable_statuses=tuple(data.get("actionable_statuses") or ("PENDING",)),
    )


def parse_quorum(data: dict[str, Any] | None) -> QuorumDef:
    if not data:
        return QuorumDef()
    defaults = QuorumDef()
    return QuorumDef(
        setting_key=data.get("setting_key", defaults.setting_key),
        default_threshold=_parse_int(
            data.get("default_threshold", defaults.default_threshold), "default_threshold"
        ),
        min_threshold=_parse_int(
            data.get("min_threshold", defaults.min_threshold), "min_threshold"
        ),
        max_threshold=_parse_int(
            data.get("max_threshold", defaults.max_threshold), "max_threshold"
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the raw catalog mapping."""
    return hash_payload(data)


def parse_configuration(data: dict[str, Any]) -> WorkflowConfigurationSet:
    """Parse a full ``WorkflowConfigurationSet`` from a loaded YAML mapping."""
    return WorkflowConfigurationSet(
        config_id=data["config_id"],
        version=_parse_int(data.get("version", 1), "version"),
        default_variant=data.get("default_variant", "STANDARD"),
        variants=tuple(parse_variant(v) for v in data["variants"]),
        quorum=parse_quorum(data.get("quorum")),
        admin_roles=tuple(data.get("admin_roles") or ("ADMIN",)),
        submit_roles=tuple(data.get("submit_roles") or ("ADMIN",)),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> WorkflowConfigurationSet:
    """Load and parse a workflow catalog YAML file."""
    return parse_configuration(load_yaml_file(path))
