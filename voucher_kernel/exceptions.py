"""
Typed Exception Hierarchy for the Voucher Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval engine (HTTP handlers, batch tools, UIs) must be able
to tell "you have no seat on this voucher" apart from "wait for the Mayor"
apart from "this voucher is already released".  Parsing message strings for
that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (blocking stage, current status, ...)

Example:
    try:
        workflow.act(voucher_id, actor_id, "BUDGET", Decision.APPROVED)
    except PrerequisiteUnsatisfiedError as e:
        show_banner(f"Waiting on {e.stage_id}")
    except WrongLifecycleStatusError as e:
        disable_buttons(e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    VoucherKernelError (base)
    |
    +-- WorkflowError
    |   +-- UnauthorizedActorError
    |   +-- DuplicateActionError
    |   +-- PrerequisiteUnsatisfiedError
    |   +-- WrongLifecycleStatusError
    |   +-- QuorumStageActionError
    |   +-- InvalidStatusTransitionError
    |   +-- MissingCancellationReasonError
    |   +-- InvalidDecisionError
    |
    +-- VoucherNotFoundError
    |
    +-- ConfigurationError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentStatusChangeError
    |
    +-- StorageError
    |   +-- TransientStorageError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|-----------------------------------
Workflow      | UNAUTHORIZED                  | Role has no seat / not permitted
              | DUPLICATE_ACTION              | Stage already decided
              | PREREQUISITE_UNSATISFIED      | Earlier stage (or quorum) incomplete
              | WRONG_LIFECYCLE_STATUS        | Voucher DRAFT or terminal
              | QUORUM_STAGE_REQUIRES_VOTE    | act() aimed at the quorum seat
              | INVALID_STATUS_TRANSITION     | Status would move backward
              | CANCELLATION_REASON_REQUIRED  | Blank cancellation reason
              | INVALID_DECISION              | Decision is not APPROVED or REJECTED
--------------|-------------------------------|-----------------------------------
Voucher       | VOUCHER_NOT_FOUND             | Voucher ID doesn't exist
--------------|-------------------------------|-----------------------------------
Configuration | CONFIGURATION_ERROR           | Quorum threshold out of bounds
--------------|-------------------------------|-----------------------------------
Concurrency   | CONCURRENT_STATUS_CHANGE      | Status compare-and-swap lost
--------------|-------------------------------|-----------------------------------
Storage       | TRANSIENT_STORAGE_FAILURE     | DB failure, rolled back, retryable
--------------|-------------------------------|-----------------------------------
Immutability  | IMMUTABILITY_VIOLATION        | Modifying a fact or audit row
--------------|-------------------------------|-----------------------------------
Audit         | AUDIT_CHAIN_BROKEN            | Hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Workflow errors are local and non-retryable by the engine.  The caller
   decides whether to retry once the missing condition is satisfied.

2. DuplicateActionError is idempotent from the caller's perspective:
   retrying has no additional effect.

3. ConcurrencyError and TransientStorageError mean the whole unit of work
   was rolled back; the caller may retry.
"""


class VoucherKernelError(Exception):
    """
    Base exception for all voucher kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "VOUCHER_KERNEL_ERROR"


# Workflow exceptions


class WorkflowError(VoucherKernelError):
    """Base exception for approval workflow errors."""

    code: str = "WORKFLOW_ERROR"


class UnauthorizedActorError(WorkflowError):
    """Actor's role has no authority for the requested operation."""

    code: str = "UNAUTHORIZED"

    def __init__(self, voucher_id: str | None, actor_role: str, reason: str):
        self.voucher_id = voucher_id
        self.actor_role = actor_role
        self.reason = reason
        target = f"voucher {voucher_id}" if voucher_id else "this operation"
        super().__init__(f"Role {actor_role} may not act on {target}: {reason}")


class DuplicateActionError(WorkflowError):
    """A decision was already recorded at this stage."""

    code: str = "DUPLICATE_ACTION"

    def __init__(self, voucher_id: str, stage: int):
        self.voucher_id = voucher_id
        self.stage = stage
        super().__init__(
            f"Stage {stage} of voucher {voucher_id} has already been decided"
        )


class PrerequisiteUnsatisfiedError(WorkflowError):
    """An earlier stage (or the quorum) is not yet complete."""

    code: str = "PREREQUISITE_UNSATISFIED"

    def __init__(
        self,
        voucher_id: str,
        target_stage: int,
        stage: int,
        stage_id: str,
    ):
        self.voucher_id = voucher_id
        self.target_stage = target_stage
        self.stage = stage
        self.stage_id = stage_id
        super().__init__(
            f"Voucher {voucher_id} cannot act at stage {target_stage}: "
            f"waiting on stage {stage} ({stage_id})"
        )


class WrongLifecycleStatusError(WorkflowError):
    """Voucher status does not permit the requested operation."""

    code: str = "WRONG_LIFECYCLE_STATUS"

    def __init__(self, voucher_id: str, current_status: str, operation: str):
        self.voucher_id = voucher_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} voucher {voucher_id}: status is {current_status}"
        )


class QuorumStageActionError(WorkflowError):
    """The quorum seat is filled by votes, not by a single decision."""

    code: str = "QUORUM_STAGE_REQUIRES_VOTE"

    def __init__(self, voucher_id: str, stage: int):
        self.voucher_id = voucher_id
        self.stage = stage
        super().__init__(
            f"Stage {stage} of voucher {voucher_id} is a quorum stage; "
            "cast a quorum vote instead"
        )


class InvalidStatusTransitionError(WorkflowError):
    """Requested status change would move the voucher backward."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, voucher_id: str, from_status: str, to_status: str):
        self.voucher_id = voucher_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition for voucher {voucher_id}: "
            f"{from_status} -> {to_status}"
        )


class MissingCancellationReasonError(WorkflowError):
    """Cancellation requires a non-blank reason."""

    code: str = "CANCELLATION_REASON_REQUIRED"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__(f"Cancelling voucher {voucher_id} requires a reason")


class InvalidDecisionError(WorkflowError):
    """The recorded decision must be APPROVED or REJECTED."""

    code: str = "INVALID_DECISION"

    def __init__(self, voucher_id: str, decision: object):
        self.voucher_id = voucher_id
        self.decision = str(decision)
        super().__init__(
            f"Unknown decision {decision!r} for voucher {voucher_id}; "
            "expected APPROVED or REJECTED"
        )


# Voucher exceptions


class VoucherNotFoundError(VoucherKernelError):
    """Voucher with given ID was not found."""

    code: str = "VOUCHER_NOT_FOUND"

    def __init__(self, voucher_id: str):
        self.voucher_id = voucher_id
        super().__init__(f"Voucher not found: {voucher_id}")


# Configuration exceptions


class ConfigurationError(VoucherKernelError):
    """A runtime setting is missing, corrupt, or outside its valid bounds."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting_key: str, value: object, reason: str):
        self.setting_key = setting_key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value {value!r} for {setting_key}: {reason}")


# Concurrency exceptions


class ConcurrencyError(VoucherKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentStatusChangeError(ConcurrencyError):
    """Status compare-and-swap found a different status than expected."""

    code: str = "CONCURRENT_STATUS_CHANGE"

    def __init__(
        self,
        voucher_id: str,
        expected_status: str,
        actual_status: str | None,
    ):
        self.voucher_id = voucher_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Voucher {voucher_id} status changed concurrently: "
            f"expected {expected_status}, found {actual_status}"
        )


# Storage exceptions


class StorageError(VoucherKernelError):
    """Base exception for persistence failures."""

    code: str = "STORAGE_ERROR"


class TransientStorageError(StorageError):
    """The unit of work failed in storage and was rolled back; safe to retry."""

    code: str = "TRANSIENT_STORAGE_FAILURE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed and was rolled back: {detail}")


# Immutability exceptions


class ImmutabilityError(VoucherKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Approval facts, quorum reviews and audit events are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditError(VoucherKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
