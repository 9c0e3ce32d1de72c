# backend/app/services/lock_reconciliation.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..domain.workflow_states import ACTIVE_DISPUTE_STATUSES, ACTIVE_TRANSFER_STATUSES
from ..models import Dispute, Property, PropertyTransfer, utcnow

log = logging.getLogger("landreg.locks")


@dataclass(frozen=True)
class LockDrift:
    property_id: int
    lock: str  # current_transfer_id | has_active_dispute
    stored: Any
    expected: Any


@dataclass
class ReconciliationReport:
    scanned: int = 0
    drifts: list[LockDrift] = field(default_factory=list)
    fixed: bool = False

    @property
    def ok(self) -> bool:
        return not self.drifts

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "scanned": self.scanned,
            "fixed": self.fixed,
            "drifts": [
                {"property_id": d.property_id, "lock": d.lock, "stored": d.stored, "expected": d.expected}
                for d in self.drifts
            ],
        }


def _active_transfers(db: Session) -> dict[int, int]:
    rows = db.execute(
        select(PropertyTransfer.property_id, func.max(PropertyTransfer.id))
        .where(PropertyTransfer.status.in_(ACTIVE_TRANSFER_STATUSES))
        .group_by(PropertyTransfer.property_id)
    ).all()
    return {int(pid): int(tid) for pid, tid in rows}


def _properties_with_active_disputes(db: Session) -> set[int]:
    rows = db.scalars(
        select(Dispute.property_id).where(Dispute.status.in_(ACTIVE_DISPUTE_STATUSES)).distinct()
    ).all()
    return {int(pid) for pid in rows}


def reconcile_locks(db: Session, *, fix: bool = False, property_id: Optional[int] = None) -> ReconciliationReport:
    """
    Compare each property's cooperative locks with what its transfers and
    disputes say they should be:

      current_transfer_id == id of the non-terminal transfer (or NULL)
      has_active_dispute  == any non-terminal dispute exists

    With fix=True the stored values are overwritten and committed.
    """
    report = ReconciliationReport()
    active_transfers = _active_transfers(db)
    disputed = _properties_with_active_disputes(db)

    q = select(Property).order_by(Property.id)
    if property_id is not None:
        q = q.where(Property.id == int(property_id))
    if fix:
        q = q.with_for_update()

    for prop in db.scalars(q).all():
        report.scanned += 1

        expected_transfer = active_transfers.get(prop.id)
        if prop.current_transfer_id != expected_transfer:
            report.drifts.append(LockDrift(prop.id, "current_transfer_id", prop.current_transfer_id, expected_transfer))
            if fix:
                prop.current_transfer_id = expected_transfer

        expected_flag = prop.id in disputed
        if bool(prop.has_active_dispute) != expected_flag:
            report.drifts.append(LockDrift(prop.id, "has_active_dispute", bool(prop.has_active_dispute), expected_flag))
            if fix:
                prop.has_active_dispute = expected_flag

    for d in report.drifts:
        log.warning(
            "lock drift on property %s: %s stored=%r expected=%r",
            d.property_id,
            d.lock,
            d.stored,
            d.expected,
            extra={"property_id": d.property_id, "action": "reconcile_locks"},
        )

    if fix and report.drifts:
        now = utcnow()
        for pid in {d.property_id for d in report.drifts}:
            prop = db.get(Property, pid)
            if prop is not None:
                prop.updated_at = now
        db.commit()
        report.fixed = True
    elif fix:
        db.commit()

    return report
