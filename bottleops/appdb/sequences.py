# SPDX-License-Identifier: AGPL-3.0-or-later
"""Sequential human-readable numbers keyed by (prefix, scope).

Batch numbers look like ``GTB-2511-001``: prefix, year-month scope, 3-digit index.
The counter row is bumped with a single UPDATE so two writers in the same scope
serialize on the row instead of reading the same maximum.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bottleops.appdb.models import BatchSequence


def month_scope(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%y%m")


def next_value(session: Session, prefix: str, scope: str = "") -> int:
    result = session.execute(
        update(BatchSequence)
        .where(BatchSequence.prefix == prefix, BatchSequence.scope == scope)
        .values(last_value=BatchSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # first number in this scope; a concurrent first insert fails on the unique key
        session.add(BatchSequence(prefix=prefix, scope=scope, last_value=1))
        session.flush()
        return 1
    return int(
        session.execute(
            select(BatchSequence.last_value).where(
                BatchSequence.prefix == prefix, BatchSequence.scope == scope
            )
        ).scalar_one()
    )


def next_batch_number(session: Session, prefix: str, now: Optional[datetime] = None) -> str:
    scope = month_scope(now)
    return f"{prefix}-{scope}-{next_value(session, prefix, scope):03d}"


def next_order_number(session: Session, now: Optional[datetime] = None) -> str:
    scope = month_scope(now)
    return f"SO-{scope}-{next_value(session, 'SO', scope):04d}"


__all__ = ["month_scope", "next_batch_number", "next_order_number", "next_value"]
