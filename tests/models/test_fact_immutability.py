"""
Append-only guarantees for approval facts, quorum reviews and audit events,
plus the uniqueness constraints that give at-most-one-winner semantics.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from voucher_kernel.exceptions import ImmutabilityViolationError
from voucher_kernel.models.approval import ApprovalFactModel, QuorumReviewModel
from voucher_kernel.models.audit_event import AuditEvent


@pytest.fixture
def voucher(submitted_voucher):
    return submitted_voucher("GSO")


def _fact(voucher, deterministic_clock, stage=1, decision="APPROVED"):
    return ApprovalFactModel(
        fact_id=uuid4(),
        voucher_id=voucher.voucher_id,
        stage=stage,
        acting_role="SECRETARY",
        actor_id=uuid4(),
        decision=decision,
        remarks="",
        decided_at=deterministic_clock.now(),
    )


def _review(voucher, deterministic_clock, reviewer_id=None):
    return QuorumReviewModel(
        review_id=uuid4(),
        voucher_id=voucher.voucher_id,
        reviewer_id=reviewer_id or uuid4(),
        remarks="",
        decided_at=deterministic_clock.now(),
    )


class TestApprovalFactImmutability:

    def test_update_rejected(self, session, voucher, deterministic_clock):
        fact = _fact(voucher, deterministic_clock)
        session.add(fact)
        session.flush()

        fact.decision = "REJECTED"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ApprovalFact"

    def test_delete_rejected(self, session, voucher, deterministic_clock):
        fact = _fact(voucher, deterministic_clock)
        session.add(fact)
        session.flush()

        session.delete(fact)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestApprovalFactUniqueness:

    def test_second_decision_at_stage_violates_constraint(
        self, session, voucher, deterministic_clock,
    ):
        session.add(_fact(voucher, deterministic_clock))
        session.flush()

        session.add(_fact(voucher, deterministic_clock, decision="REJECTED"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_stage_must_be_positive(self, session, voucher, deterministic_clock):
        session.add(_fact(voucher, deterministic_clock, stage=0))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_unknown_decision_rejected(self, session, voucher, deterministic_clock):
        session.add(_fact(voucher, deterministic_clock, decision="MAYBE"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_fact_requires_existing_voucher(self, session, deterministic_clock, voucher):
        orphan = _fact(voucher, deterministic_clock)
        orphan.voucher_id = uuid4()
        session.add(orphan)
        with pytest.raises(IntegrityError):
            session.flush()


class TestQuorumReviewGuarantees:

    def test_same_reviewer_twice_violates_constraint(
        self, session, voucher, deterministic_clock,
    ):
        reviewer = uuid4()
        session.add(_review(voucher, deterministic_clock, reviewer))
        session.flush()

        session.add(_review(voucher, deterministic_clock, reviewer))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_update_rejected(self, session, voucher, deterministic_clock):
        review = _review(voucher, deterministic_clock)
        session.add(review)
        session.flush()

        review.remarks = "changed my mind"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "QuorumReview"

    def test_delete_rejected(self, session, voucher, deterministic_clock):
        review = _review(voucher, deterministic_clock)
        session.add(review)
        session.flush()

        session.delete(review)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAuditEventImmutability:

    def test_update_rejected(self, session, voucher):
        audit = session.execute(select(AuditEvent).limit(1)).scalar_one()
        audit.action = "tampered"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_rejected(self, session, voucher):
        audit = session.execute(select(AuditEvent).limit(1)).scalar_one()
        session.delete(audit)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
