# SPDX-License-Identifier: AGPL-3.0-or-later
import json
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bottleops.appdb.models import AuditLog


def write_audit(
    session: Session,
    entity: str,
    entity_id: Optional[int],
    action: str,
    *,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    actor: Optional[str] = None,
) -> AuditLog:
    row = AuditLog(
        entity=entity,
        entity_id=entity_id,
        action=action,
        before=json.dumps(before, default=str) if before is not None else None,
        after=json.dumps(after, default=str) if after is not None else None,
        actor=actor,
    )
    session.add(row)
    return row


def audit_trail(session: Session, entity: str, entity_id: int) -> list[dict[str, Any]]:
    rows = (
        session.execute(
            select(AuditLog)
            .where(AuditLog.entity == entity, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
        )
        .scalars()
        .all()
    )
    return [
        {
            "id": r.id,
            "action": r.action,
            "before": json.loads(r.before) if r.before else None,
            "after": json.loads(r.after) if r.after else None,
            "actor": r.actor,
            "created_at": r.created_at,
        }
        for r in rows
    ]


__all__ = ["audit_trail", "write_audit"]
