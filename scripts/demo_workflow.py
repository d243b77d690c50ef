#!/usr/bin/env python3
"""
Walk one voucher through its approval chain using the real services.

Creates a voucher for the chosen origin role, submits it, then has each
stage act in order (quorum stages collect votes from distinct reviewers
until the threshold is met).  Prints the progress view after every step
and finishes by validating the audit hash chain.

Usage:
    python3 scripts/demo_workflow.py                      # STANDARD variant
    python3 scripts/demo_workflow.py --origin GSO          # with BAC quorum
    python3 scripts/demo_workflow.py --origin HR --reject-at 3
    DATABASE_URL=postgresql://... python3 scripts/demo_workflow.py
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from uuid import uuid4

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = "sqlite:///voucher_demo.db"

STATE_MARKS = {
    "completed": "[x]",
    "current": "[>]",
    "pending": "[ ]",
    "rejected": "[-]",
}


def _print_progress(progress) -> None:
    print(f"  status={progress.status.value}  {progress.percent_complete}% complete")
    for row in progress.stages:
        mark = STATE_MARKS[row.state.value]
        line = f"    {mark} {row.stage}. {row.label} ({row.role})"
        if row.quorum_required is not None:
            line += f"  votes {row.quorum_votes}/{row.quorum_required}"
        print(line)


def main() -> int:
    parser = argparse.ArgumentParser(description="Voucher approval workflow demo")
    parser.add_argument("--origin", default="REQUESTER", help="Origin role of the voucher")
    parser.add_argument("--reject-at", type=int, default=None,
                        help="Stage number at which to record a rejection")
    parser.add_argument("--threshold", type=int, default=None,
                        help="Quorum threshold to set before starting")
    parser.add_argument("--db-url", default=os.environ.get("DATABASE_URL", DEFAULT_DB_URL))
    parser.add_argument("--verbose", action="store_true", help="Print JSON log records")
    args = parser.parse_args()

    from voucher_engines.approval import select_variant
    from voucher_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from voucher_kernel.domain.workflow import Decision
    from voucher_kernel.logging_config import configure_logging
    from voucher_services.workflow_service import VoucherWorkflowService

    configure_logging(level=logging.INFO if args.verbose else logging.WARNING)
    init_engine_from_url(args.db_url)
    create_tables()

    service = VoucherWorkflowService(get_session_factory())
    admin_id = uuid4()
    try:
        if args.threshold is not None:
            service.set_quorum_threshold(args.threshold, admin_id, "ADMIN")

        owner_id = uuid4()
        voucher = service.create_voucher(args.origin, owner_id, reference="DEMO")
        variant = select_variant(service.catalog, voucher.origin_role)
        print(f"Voucher {voucher.voucher_id} ({variant.kind.value} workflow)")

        service.submit(voucher.voucher_id, owner_id, args.origin)
        print("Submitted:")
        _print_progress(service.get_progress(voucher.voucher_id))

        for stage in variant.stages:
            if stage.is_quorum:
                required = service.get_quorum_threshold()
                for _ in range(required):
                    service.cast_quorum_vote(voucher.voucher_id, uuid4(), stage.role)
                print(f"Quorum at stage {stage.stage} reached with {required} votes:")
            else:
                decision = Decision.REJECTED if stage.stage == args.reject_at else Decision.APPROVED
                service.act(voucher.voucher_id, uuid4(), stage.role, decision)
                print(f"Stage {stage.stage} {decision.value.lower()} by {stage.role}:")
            progress = service.get_progress(voucher.voucher_id)
            _print_progress(progress)
            if progress.status.value in ("REJECTED", "RELEASED"):
                break

        trail = service.get_audit_trail(voucher.voucher_id)
        print(f"Audit trail: {', '.join(a.value for a in trail.actions)}")
        print(f"Audit chain valid: {service.validate_audit_chain()}")
    finally:
        service.dispatcher.drain(timeout=5)
        service.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
