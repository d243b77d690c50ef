"""Tests for voucher_kernel/logging_config.py: workflow records as JSON."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from voucher_config.compiler import CompilationError, CompilationFailedError
from voucher_kernel.domain.workflow import Decision, VoucherStatus, WorkflowVariantKind
from voucher_kernel.exceptions import (
    ConcurrentStatusChangeError,
    PrerequisiteUnsatisfiedError,
    UnauthorizedActorError,
)
from voucher_kernel.logging_config import (
    LOG_LEVEL_ENV,
    WORKFLOW_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def emit():
    """Install the kernel handler on a buffer; return (logger, read_records)."""
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return get_logger("services.approval"), _records


def _kernel_handlers() -> list[logging.Handler]:
    return [
        h for h in logging.getLogger("voucher_kernel").handlers
        if isinstance(h.formatter, StructuredFormatter)
    ]


# ---------------------------------------------------------------------------
# Workflow records
# ---------------------------------------------------------------------------


class TestWorkflowRecords:

    def test_stage_decision_record_inside_request(self, emit):
        logger, records = emit
        voucher_id, actor_id = uuid4(), uuid4()
        with LogContext.bind(
            correlation_id="req-7", voucher_id=voucher_id, actor_id=actor_id,
            actor_role="MAYOR", operation="act",
        ):
            logger.info(
                "stage_decision_recorded",
                extra={
                    "variant": WorkflowVariantKind.GSO,
                    "stage": 2,
                    "decision": Decision.APPROVED,
                    "from_status": VoucherStatus.PENDING,
                    "to_status": VoucherStatus.PENDING,
                },
            )

        record = records()[0]
        assert record["logger"] == "voucher_kernel.services.approval"
        assert record["voucher_id"] == str(voucher_id)
        assert record["actor_id"] == str(actor_id)
        assert record["actor_role"] == "MAYOR"
        assert record["operation"] == "act"
        assert (record["variant"], record["stage"], record["decision"]) == ("GSO", 2, "APPROVED")
        assert record["to_status"] == "PENDING"

    def test_field_order_envelope_context_workflow_extra(self, emit):
        logger, records = emit
        with LogContext.bind(voucher_id="v-1", operation="vote"):
            logger.info(
                "quorum_vote_recorded",
                extra={"votes": 3, "stage": 3, "variant": "GSO", "required": 3},
            )

        keys = list(records()[0])
        assert keys[:4] == ["ts", "level", "logger", "message"]
        assert keys[4:6] == ["voucher_id", "operation"]
        assert keys[6:8] == ["variant", "stage"]
        assert set(keys[8:]) == {"votes", "required"}

    def test_request_context_wins_over_extra(self, emit):
        logger, records = emit
        with LogContext.bind(voucher_id="from-request"):
            logger.info("action_blocked", extra={"voucher_id": "from-extra", "reason": "DUPLICATE_ACTION"})

        record = records()[0]
        assert record["voucher_id"] == "from-request"
        assert record["reason"] == "DUPLICATE_ACTION"

    def test_reviewer_sets_logged_sorted(self, emit):
        logger, records = emit
        a, b = sorted([uuid4(), uuid4()], key=str)
        logger.info("quorum_snapshot", extra={"reviewers": frozenset({b, a})})
        assert records()[0]["reviewers"] == [str(a), str(b)]

    def test_workflow_field_names(self):
        assert "stage" in WORKFLOW_FIELDS
        assert "decision" in WORKFLOW_FIELDS
        assert set(WORKFLOW_FIELDS).isdisjoint(LogContext.FIELDS)

    def test_debug_dropped_at_info(self):
        stream = StringIO()
        configure_logging(level="info", stream=stream)
        logger = get_logger("engines")
        logger.debug("satisfied_stages_computed")
        logger.info("voucher_submitted")
        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["voucher_submitted"]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TestExceptionFields:

    def test_blocking_stage_is_logged(self, emit):
        logger, records = emit
        try:
            raise PrerequisiteUnsatisfiedError("v-2", 4, 3, "bac-review")
        except PrerequisiteUnsatisfiedError:
            logger.warning("act_rejected", exc_info=True)

        record = records()[0]
        assert record["exc_code"] == "PREREQUISITE_UNSATISFIED"
        assert record["exc_target_stage"] == 4
        assert record["exc_stage"] == 3
        assert record["exc_stage_id"] == "bac-review"
        assert "traceback" in record

    def test_lost_status_race_is_logged(self, emit):
        logger, records = emit
        try:
            raise ConcurrentStatusChangeError("v-3", "PENDING", "CANCELLED")
        except ConcurrentStatusChangeError:
            logger.warning("release_lost", exc_info=True)

        record = records()[0]
        assert record["exc_code"] == "CONCURRENT_STATUS_CHANGE"
        assert (record["exc_expected_status"], record["exc_actual_status"]) == ("PENDING", "CANCELLED")

    def test_threshold_change_denied_without_voucher(self, emit):
        logger, records = emit
        try:
            raise UnauthorizedActorError(None, "MAYOR", "only administrators may change the threshold")
        except UnauthorizedActorError:
            logger.warning("threshold_change_denied", exc_info=True)

        record = records()[0]
        assert record["exc_voucher_id"] is None
        assert "this operation" in record["exc_message"]

    def test_catalog_errors_list_serialised(self, emit):
        logger, records = emit
        try:
            raise CompilationFailedError([
                CompilationError("variant", "duplicate role BUDGET", variant_name="GSO"),
            ])
        except CompilationFailedError:
            logger.error("catalog_rejected", exc_info=True)

        record = records()[0]
        assert record["exc_code"] == "COMPILATION_FAILED"
        assert "duplicate role BUDGET" in record["exc_errors"][0]

    def test_foreign_exception_has_no_kernel_fields(self, emit):
        logger, records = emit
        try:
            raise ConnectionError("smtp down")
        except ConnectionError:
            logger.error("notification_failed", exc_info=True)

        record = records()[0]
        assert record["exc_type"] == "ConnectionError"
        assert not any(k == "exc_code" or k == "exc_args" for k in record)


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="stage"):
            with LogContext.bind(stage=3):
                pass

    def test_nested_bind_layers_and_restores(self):
        with LogContext.bind(correlation_id="req-1", operation="act"):
            with LogContext.bind(voucher_id="v-9", operation="vote"):
                assert LogContext.get_all() == {
                    "correlation_id": "req-1", "operation": "vote", "voucher_id": "v-9",
                }
            assert LogContext.get_all() == {"correlation_id": "req-1", "operation": "act"}
        assert LogContext.get_all() == {}

    def test_none_keeps_outer_value(self):
        with LogContext.bind(actor_role="ADMIN"):
            with LogContext.bind(actor_role=None, operation="cancel"):
                assert LogContext.get("actor_role") == "ADMIN"

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(operation="submit"):
                raise RuntimeError("rolled back")
        assert LogContext.get("operation") is None

    def test_clear(self):
        with LogContext.bind(voucher_id="v-1"):
            LogContext.clear()
            assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging / reset_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_second_call_adds_nothing(self):
        kernel_logger = logging.getLogger("voucher_kernel")
        foreign = logging.NullHandler()
        kernel_logger.addHandler(foreign)
        try:
            first = configure_logging(stream=StringIO())
            second = configure_logging(stream=StringIO())
            assert second is first
            assert _kernel_handlers() == [first]
            assert foreign in kernel_logger.handlers
        finally:
            kernel_logger.removeHandler(foreign)

    def test_reset_removes_only_kernel_handler(self):
        kernel_logger = logging.getLogger("voucher_kernel")
        foreign = logging.NullHandler()
        kernel_logger.addHandler(foreign)
        try:
            configure_logging(stream=StringIO())
            reset_logging()
            assert _kernel_handlers() == []
            assert foreign in kernel_logger.handlers
            assert kernel_logger.propagate is True
        finally:
            kernel_logger.removeHandler(foreign)

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "warning")
        configure_logging(stream=StringIO())
        assert logging.getLogger("voucher_kernel").level == logging.WARNING

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError, match="LOUD"):
            configure_logging(level="LOUD", stream=StringIO())

    def test_kernel_records_do_not_reach_root(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("voucher_kernel").propagate is False
