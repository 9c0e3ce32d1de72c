# backend/app/domain/audit.py
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy import event, func, select
from sqlalchemy.orm import Session

from ..models import ApplicationLog, DisputeTimelineEntry, TransferTimelineEntry, utcnow
from .actor import Actor
from .enums import AuditAction
from .errors import AuditImmutableError


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if not v:
        return None
    return json.dumps(v, sort_keys=True, default=str)


def _loads(s: Optional[str]) -> dict[str, Any]:
    if not s:
        return {}
    try:
        x = json.loads(s)
        return x if isinstance(x, dict) else {}
    except ValueError:
        return {}


def record(
    db: Session,
    *,
    property_id: int,
    actor: Actor,
    action: Union[AuditAction, str],
    status: str,
    user_id: Optional[int] = None,
    previous_status: Optional[str] = None,
    notes: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> ApplicationLog:
    """
    Append one ApplicationLog row.

    - Adds + flushes only. Never commits: the entry lands in the same
      transaction as the state change it describes, or not at all.
    - user_id is the account the entry is about (owner, disputant...);
      defaults to the actor.
    - created_at comes from the caller's clock when given.
    """
    row = ApplicationLog(
        property_id=int(property_id),
        user_id=int(user_id) if user_id is not None else actor.id,
        performed_by_id=actor.id,
        performed_by_role=actor.role.value,
        action=AuditAction(action).value,
        status=str(status),
        previous_status=previous_status,
        notes=notes,
        metadata_json=_dumps(metadata),
        created_at=created_at or utcnow(),
    )
    db.add(row)
    db.flush()
    return row


def log_metadata(row: ApplicationLog) -> dict[str, Any]:
    return _loads(row.metadata_json)


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LogFilter:
    action: Optional[str] = None
    status: Optional[str] = None
    user_id: Optional[int] = None
    property_id: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


def logs_for_property(db: Session, *, property_id: int) -> list[ApplicationLog]:
    q = (
        select(ApplicationLog)
        .where(ApplicationLog.property_id == int(property_id))
        .order_by(ApplicationLog.id.desc())
    )
    return list(db.scalars(q).all())


def logs_for_user(db: Session, *, user_id: int) -> list[ApplicationLog]:
    q = select(ApplicationLog).where(ApplicationLog.user_id == int(user_id)).order_by(ApplicationLog.id.desc())
    return list(db.scalars(q).all())


def list_logs(db: Session, *, filters: LogFilter, page: int = 1, limit: int = 20) -> tuple[list[ApplicationLog], int]:
    q = select(ApplicationLog)
    if filters.action:
        q = q.where(ApplicationLog.action == filters.action)
    if filters.status:
        q = q.where(ApplicationLog.status == filters.status)
    if filters.user_id is not None:
        q = q.where(ApplicationLog.user_id == int(filters.user_id))
    if filters.property_id is not None:
        q = q.where(ApplicationLog.property_id == int(filters.property_id))
    if filters.start is not None:
        q = q.where(ApplicationLog.created_at >= filters.start)
    if filters.end is not None:
        q = q.where(ApplicationLog.created_at <= filters.end)

    total = int(db.scalar(select(func.count()).select_from(q.subquery())) or 0)
    page = max(1, int(page))
    rows = db.scalars(q.order_by(ApplicationLog.id.desc()).offset((page - 1) * int(limit)).limit(int(limit))).all()
    return list(rows), total


# -----------------------------------------------------------------------------
# Append-only guards
# -----------------------------------------------------------------------------
# Fire before the UPDATE/DELETE reaches the database; the flush fails and the
# surrounding transaction is rolled back by the unit of work.


def _block_update(mapper, connection, target) -> None:
    raise AuditImmutableError(type(target).__name__, "update")


def _block_delete(mapper, connection, target) -> None:
    raise AuditImmutableError(type(target).__name__, "delete")


for _model in (ApplicationLog, TransferTimelineEntry, DisputeTimelineEntry):
    event.listen(_model, "before_update", _block_update)
    event.listen(_model, "before_delete", _block_delete)
