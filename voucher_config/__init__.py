"""
voucher_config -- single public entrypoint for the workflow catalog.

Responsibility:
    Provides the ONLY way to obtain the workflow catalog at runtime through
    ``get_workflow_catalog()``.  YAML loading, validation and compilation
    are internal steps of that call.

Architecture position:
    Configuration -- YAML-driven, validated before use.  Sits above
    ``voucher_kernel`` and below ``voucher_services``.  The kernel never
    imports from ``voucher_config``.

Invariants enforced:
    - Loaded once per path: repeated calls return the same catalog object,
      so the validator and the projector always share one stage table.
    - A catalog is only returned after passing validation.

Failure modes:
    - ``FileNotFoundError`` -- no catalog file at the given path.
    - ``CompilationFailedError`` -- structural validation errors.

Audit relevance:
    Every load emits a ``WORKFLOW_CONFIG_TRACE`` log entry with config id,
    version, checksum and variant count.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from voucher_config.compiler import (
    CompilationError,
    CompilationFailedError,
    compile_workflow_catalog,
)
from voucher_config.loader import load_configuration
from voucher_kernel.domain.workflow import WorkflowCatalog
from voucher_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CATALOG_PATH = Path(__file__).parent / "sets" / "workflows.yaml"

__all__ = [
    "CompilationError",
    "CompilationFailedError",
    "DEFAULT_CATALOG_PATH",
    "get_workflow_catalog",
]


def get_workflow_catalog(config_path: Path | None = None) -> WorkflowCatalog:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a catalog YAML file.  Defaults to
            voucher_config/sets/workflows.yaml.
    """
    return _load_catalog(Path(config_path or DEFAULT_CATALOG_PATH).resolve())


@lru_cache(maxsize=8)
def _load_catalog(path: Path) -> WorkflowCatalog:
    catalog = compile_workflow_catalog(load_configuration(path))
    _logger.info(
        "WORKFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "WORKFLOW_CONFIG_TRACE",
            "config_id": catalog.config_id,
            "config_version": catalog.version,
            "checksum": catalog.checksum,
            "variant_count": len(catalog.variants),
            "source": str(path),
        },
    )
    return catalog
