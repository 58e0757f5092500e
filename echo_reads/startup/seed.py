#!/usr/bin/env python3
"""Idempotent data seeding.

Ensures the free plan exists so downgrades, revocations and usage limits
always have a plan to point at. Safe to run on every start.

Exit Codes:
  0 = ok / already present
  3 = seeding failed
"""
from __future__ import annotations

import json
import sys
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from echo_reads.db.engine import app_session, init_engine_once
from echo_reads.db.repositories import plans_repo
from echo_reads.services.subscriptions_service import DEFAULT_FEATURES
from echo_reads.utils.logging import get_logger

LOG = get_logger("seed")

FREE_PLAN_NAME = "Free"


def ensure_free_plan() -> Dict[str, Any]:
    with app_session():
        existing = plans_repo.get_free_plan()
        if existing is not None:
            return {"id": existing.id, "created": False}
        plan = plans_repo.create_plan(
            name=FREE_PLAN_NAME,
            price=0,
            interval="free",
            features=json.dumps(DEFAULT_FEATURES),
            is_active=True,
            is_internal=False,
            sort_order=0,
        )
        LOG.info("Seeded free plan id=%s", plan.id)
        return {"id": plan.id, "created": True}


def main() -> int:  # pragma: no cover (thin wrapper)
    init_engine_once()
    try:
        summary = ensure_free_plan()
    except SQLAlchemyError as exc:
        print(f"[SEED] plans ERROR {exc}", file=sys.stderr)
        return 3
    print(f"[SEED] plans ok free_plan_id={summary['id']} created={'yes' if summary['created'] else 'no'}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
