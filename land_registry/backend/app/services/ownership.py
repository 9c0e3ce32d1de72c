# backend/app/services/ownership.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.errors import NotFoundError
from ..models import AppUser, Dispute, Property, PropertyTransfer


def must_get_property(db: Session, *, property_id: int) -> Property:
    row = db.get(Property, int(property_id))
    if not row:
        raise NotFoundError("property", property_id, message="Property not found")
    return row


def lock_property(db: Session, *, property_id: int) -> Property:
    """
    Re-read the property under a row lock (SELECT ... FOR UPDATE where the
    backend supports it). populate_existing refreshes an instance already in
    the identity map so the cooperative locks are read fresh.
    """
    q = (
        select(Property)
        .where(Property.id == int(property_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = db.scalar(q)
    if not row:
        raise NotFoundError("property", property_id, message="Property not found")
    return row


def must_get_transfer(db: Session, *, transfer_id: int) -> PropertyTransfer:
    row = db.get(PropertyTransfer, int(transfer_id))
    if not row:
        raise NotFoundError("transfer", transfer_id, message="Transfer not found")
    return row


def must_get_dispute(db: Session, *, dispute_id: int) -> Dispute:
    row = db.get(Dispute, int(dispute_id))
    if not row:
        raise NotFoundError("dispute", dispute_id, message="Dispute not found")
    return row


def must_get_user(db: Session, *, user_id: int) -> AppUser:
    row = db.get(AppUser, int(user_id))
    if not row:
        raise NotFoundError("user", user_id, message="User not found")
    return row


def find_user_by_email(db: Session, email: str) -> Optional[AppUser]:
    e = (email or "").strip().lower()
    if not e:
        return None
    return db.scalar(select(AppUser).where(func.lower(AppUser.email) == e))


def is_unique_violation(exc: IntegrityError, *names: str) -> bool:
    """True when the IntegrityError came from one of the named unique indexes/columns."""
    msg = str(getattr(exc, "orig", exc)).lower()
    if "unique" not in msg and "duplicate" not in msg:
        return False
    return any(n.lower() in msg for n in names)


def paginate(db: Session, q, *, page: int = 1, limit: int = 10) -> tuple[list, int]:
    total = int(db.scalar(select(func.count()).select_from(q.order_by(None).subquery())) or 0)
    page = max(1, int(page))
    limit = max(1, int(limit))
    rows = db.scalars(q.offset((page - 1) * limit).limit(limit)).all()
    return list(rows), total
