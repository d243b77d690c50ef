"""Builders for in-memory voucher facts used by the pure engine tests."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from voucher_kernel.domain.voucher import (
    ApprovalFact,
    QuorumReviewFact,
    Voucher,
    VoucherFacts,
)
from voucher_kernel.domain.workflow import Decision, VoucherStatus

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def build_facts(
    status=VoucherStatus.PENDING,
    approved=(),
    rejected=(),
    reviewers=0,
    origin_role="REQUESTER",
):
    """VoucherFacts with APPROVED facts at ``approved`` stages, REJECTED at
    ``rejected`` stages, and ``reviewers`` distinct quorum votes."""
    voucher = Voucher(
        voucher_id=uuid4(),
        origin_role=origin_role,
        created_by_id=uuid4(),
        status=status,
    )
    facts = []
    for offset, (stages, decision) in enumerate(
        ((approved, Decision.APPROVED), (rejected, Decision.REJECTED))
    ):
        for stage in stages:
            facts.append(ApprovalFact(
                fact_id=uuid4(),
                voucher_id=voucher.voucher_id,
                stage=stage,
                acting_role="ANY",
                actor_id=uuid4(),
                decision=decision,
                decided_at=BASE_TIME + timedelta(minutes=stage, seconds=offset),
            ))
    reviews = tuple(
        QuorumReviewFact(
            review_id=uuid4(),
            voucher_id=voucher.voucher_id,
            reviewer_id=uuid4(),
            decided_at=BASE_TIME + timedelta(hours=1, minutes=i),
        )
        for i in range(reviewers)
    )
    return VoucherFacts(voucher=voucher, approval_facts=tuple(facts), quorum_reviews=reviews)


@pytest.fixture
def facts():
    return build_facts
