"""
voucher_kernel.logging_config -- JSON log records for voucher workflow events.

Responsibility:
    Render every record under the ``voucher_kernel`` logger as one JSON
    object per line.  Three groups of fields, in this order:

    1. Envelope: ``ts``, ``level``, ``logger``, ``message``.
    2. Request context from LogContext: who is acting on which voucher in
       which operation (``correlation_id``, ``voucher_id``, ``actor_id``,
       ``actor_role``, ``operation``).
    3. Workflow fields lifted from ``extra`` (``variant``, ``stage``,
       ``target_stage``, ``decision``, ``from_status``, ``to_status``,
       ``reason``), then any remaining ``extra`` keys.

    Kernel exceptions add ``exc_code`` and one ``exc_<attr>`` per public
    attribute, so a blocked action logs the stage that blocked it.

Invariants enforced:
    - Only LogContext.FIELDS can be bound; any other name is a TypeError.
    - Request context wins over a same-named ``extra`` key.
    - Enums log their value, UUIDs and datetimes log as strings, sets log
      as sorted lists.
    - configure_logging installs at most one kernel handler, no matter
      which other handlers (pytest capture, host application) are attached.
"""

__all__ = [
    "LOG_LEVEL_ENV",
    "LogContext",
    "StructuredFormatter",
    "WORKFLOW_FIELDS",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import os
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from voucher_kernel.exceptions import VoucherKernelError

LOG_LEVEL_ENV = "VOUCHER_LOG_LEVEL"

_LOGGER_PREFIX = "voucher_kernel"

WORKFLOW_FIELDS: tuple[str, ...] = (
    "variant",
    "stage",
    "target_stage",
    "decision",
    "from_status",
    "to_status",
    "reason",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})

_request_fields: ContextVar[Mapping[str, str]] = ContextVar(
    "voucher_log_request_fields", default=_EMPTY
)


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------


class LogContext:
    """
    Request-scoped fields attached to every record logged inside ``bind``.

    The whole context is one immutable mapping held in a ContextVar, so a
    nested ``bind`` layers on top of the outer one and restores it on exit.
    """

    FIELDS: tuple[str, ...] = (
        "correlation_id",
        "voucher_id",
        "actor_id",
        "actor_role",
        "operation",
    )

    @classmethod
    def get(cls, name: str) -> str | None:
        return _request_fields.get().get(name)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_request_fields.get())

    @classmethod
    def clear(cls) -> None:
        _request_fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: object) -> Iterator[type["LogContext"]]:
        """
        Layer ``fields`` over the current context for the ``with`` block.

        Values are stringified (voucher and actor ids arrive as UUIDs);
        ``None`` leaves any outer value in place.
        """
        unknown = sorted(set(fields) - set(cls.FIELDS))
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")

        merged = dict(_request_fields.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = _request_fields.set(MappingProxyType(merged))
        try:
            yield cls
        finally:
            _request_fields.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return [_jsonable(v) for v in sorted(value, key=str)]
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, VoucherKernelError):
        fields["exc_code"] = exc.code
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = _jsonable(value)
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, request context, workflow fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _STDLIB_KEYS and not key.startswith("_")
        }
        for key in WORKFLOW_FIELDS:
            if key in extra:
                payload.setdefault(key, _jsonable(extra.pop(key)))
        for key, value in extra.items():
            payload.setdefault(key, _jsonable(value))

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the voucher_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_HANDLER_MARK = "_voucher_kernel_handler"
_lock = threading.Lock()


def _kernel_handlers(kernel_logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in kernel_logger.handlers if getattr(h, _HANDLER_MARK, False)]


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def configure_logging(
    *,
    level: int | str | None = None,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the JSON handler on the ``voucher_kernel`` logger.

    Idempotent: when a kernel handler is already installed it is returned
    unchanged.  ``level`` defaults to ``$VOUCHER_LOG_LEVEL`` (else INFO).
    """
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    with _lock:
        installed = _kernel_handlers(kernel_logger)
        if installed:
            return installed[0]

        resolved = _resolve_level(level)
        h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        h.setFormatter(StructuredFormatter())
        setattr(h, _HANDLER_MARK, True)

        kernel_logger.setLevel(resolved)
        kernel_logger.propagate = False
        kernel_logger.addHandler(h)
        return h


def reset_logging() -> None:
    """Remove the kernel handler and restore logger defaults. For tests."""
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    with _lock:
        for h in _kernel_handlers(kernel_logger):
            kernel_logger.removeHandler(h)
        kernel_logger.setLevel(logging.NOTSET)
        kernel_logger.propagate = True
