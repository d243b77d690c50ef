"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every voucher state
    change and settings change.  Provides chain validation for tamper
    detection and per-voucher trace queries for review.

Architecture position:
    Kernel > Services -- imperative shell, called by VoucherService,
    QuorumSettingsService and the approval service.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never max+1).
    - Chain integrity: ``hash = H(entity_type, entity_id, action,
      payload_hash, prev_hash)``.  Every event links to its predecessor.
    - Append-only: audit events are never modified or deleted (ORM listeners).
    - Write-only telemetry: nothing in the approval path reads these rows
      to make a decision.

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import NAMESPACE_URL, UUID, uuid5

from sqlalchemy import select
from sqlalchemy.orm import Session

from voucher_kernel.domain.clock import Clock, SystemClock
from voucher_kernel.domain.voucher import Voucher
from voucher_kernel.exceptions import AuditChainBrokenError
from voucher_kernel.logging_config import get_logger
from voucher_kernel.models.audit_event import AuditAction, AuditEvent
from voucher_kernel.services.sequence_service import SequenceService
from voucher_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")

VOUCHER_ENTITY = "Voucher"
SETTING_ENTITY = "SystemSetting"


def setting_entity_id(key: str) -> UUID:
    """Stable entity id for a system setting key."""
    return uuid5(NAMESPACE_URL, f"voucher-kernel:system-setting:{key}")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str

    @property
    def before(self) -> dict[str, Any] | None:
        return self.payload.get("before")

    @property
    def after(self) -> dict[str, Any] | None:
        return self.payload.get("after")


@dataclass(frozen=True)
class AuditTrace:
    """Complete audit trace for an entity, in sequence order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Contract:
        Accepts domain-specific recording requests (voucher created, stage
        decided, quorum vote, cancellation, threshold change) and creates
        append-only ``AuditEvent`` rows with hash chain linkage.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT interpret audit events.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        Public callers should use the domain-specific ``record_*`` methods.

        Postconditions:
            - A new ``AuditEvent`` row is flushed with a monotonically
              increasing ``seq`` and a valid chain link.
        """
        # The counter row lock also serializes readers of the chain tail
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = payload or {}
        computed_payload_hash = hash_payload(payload_data)
        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    # Voucher lifecycle

    def record_voucher_created(self, voucher: Voucher, actor_id: UUID) -> AuditEvent:
        return self._create_audit_event(
            entity_type=VOUCHER_ENTITY,
            entity_id=voucher.voucher_id,
            action=AuditAction.VOUCHER_CREATED,
            actor_id=actor_id,
            payload={
                "before": None,
                "after": voucher.snapshot(),
                "reference": voucher.reference,
            },
        )

    def record_voucher_submitted(
        self,
        before: Voucher,
        after: Voucher,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=VOUCHER_ENTITY,
            entity_id=after.voucher_id,
            action=AuditAction.VOUCHER_SUBMITTED,
            actor_id=actor_id,
            payload={"before": before.snapshot(), "after": after.snapshot()},
        )

    def record_stage_decision(
        self,
        before: Voucher,
        after: Voucher,
        actor_id: UUID,
        acting_role: str,
        stage: int,
        approved: bool,
        remarks: str = "",
    ) -> AuditEvent:
        """
        Record a decision at a single-approver stage.

        Preconditions:
            - The matching approval fact was flushed in the same transaction.
        """
        return self._create_audit_event(
            entity_type=VOUCHER_ENTITY,
            entity_id=after.voucher_id,
            action=AuditAction.STAGE_APPROVED if approved else AuditAction.STAGE_REJECTED,
            actor_id=actor_id,
            payload={
                "before": before.snapshot(),
                "after": after.snapshot(),
                "stage": stage,
                "acting_role": acting_role,
                "remarks": remarks,
            },
        )

    def record_quorum_vote(
        self,
        voucher: Voucher,
        reviewer_id: UUID,
        stage: int,
        votes: int,
        required: int,
    ) -> AuditEvent:
        """Record an accepted quorum vote with the running count."""
        return self._create_audit_event(
            entity_type=VOUCHER_ENTITY,
            entity_id=voucher.voucher_id,
            action=AuditAction.QUORUM_VOTE_RECORDED,
            actor_id=reviewer_id,
            payload={
                "before": voucher.snapshot(),
                "after": voucher.snapshot(),
                "stage": stage,
                "votes": votes,
                "required": required,
                "quorum_reached": votes >= required,
            },
        )

    def record_voucher_cancelled(
        self,
        before: Voucher,
        after: Voucher,
        actor_id: UUID,
        reason: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=VOUCHER_ENTITY,
            entity_id=after.voucher_id,
            action=AuditAction.VOUCHER_CANCELLED,
            actor_id=actor_id,
            payload={
                "before": before.snapshot(),
                "after": after.snapshot(),
                "reason": reason,
            },
        )

    # Settings

    def record_threshold_changed(
        self,
        setting_key: str,
        old_value: int | None,
        new_value: int,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=SETTING_ENTITY,
            entity_id=setting_entity_id(setting_key),
            action=AuditAction.QUORUM_THRESHOLD_CHANGED,
            actor_id=actor_id,
            payload={
                "key": setting_key,
                "before": {"value": old_value},
                "after": {"value": new_value},
            },
        )

    # Validation and trace queries

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns ``True`` only if every event's stored ``hash`` matches
              the recomputed value and every ``prev_hash`` matches its
              predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if hash_payload(event.payload or {}) != event.payload_hash:
                logger.critical("audit_payload_tampered", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    event.payload_hash,
                    hash_payload(event.payload or {}),
                )

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    events[i - 1].hash,
                    event.prev_hash or "None",
                )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Complete audit trace for an entity, in sequence order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )
        return AuditTrace(entity_type=entity_type, entity_id=entity_id, entries=entries)

    def get_voucher_trace(self, voucher_id: UUID) -> AuditTrace:
        return self.get_trace(VOUCHER_ENTITY, voucher_id)
