# backend/app/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.actor import Actor
from app.domain.enums import PropertyType, Role
from app.models import AppUser, Property
from app.services.property_state_machine import PropertyStateMachine
from app.services.workflow_context import WorkflowContext

DEMO_USERS = (
    ("owner@demo.local", "Demo Owner", Role.USER),
    ("buyer@demo.local", "Demo Buyer", Role.USER),
    ("officer@demo.local", "Demo Land Officer", Role.LAND_OFFICER),
    ("admin@demo.local", "Demo Admin", Role.ADMIN),
)


@dataclass(frozen=True)
class SeedResult:
    user_ids: dict[str, int]
    property_id: Optional[int]


def _get_or_create_user(db: Session, email: str, full_name: str, role: Role) -> AppUser:
    row = db.scalar(select(AppUser).where(AppUser.email == email))
    if row:
        return row
    row = AppUser(email=email, full_name=full_name, role=role.value)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_demo(db: Session, *, create_sample_property: bool = True) -> SeedResult:
    """Demo accounts for every role plus one pending parcel owned by owner@demo.local."""
    users = {email: _get_or_create_user(db, email, name, role) for email, name, role in DEMO_USERS}

    property_id: Optional[int] = None
    if create_sample_property:
        owner = users["owner@demo.local"]
        existing = db.scalar(select(Property).where(Property.owner_id == owner.id).order_by(Property.id).limit(1))
        if existing is not None:
            property_id = existing.id
        else:
            prop = PropertyStateMachine(WorkflowContext(db=db)).register_property(
                Actor.of(owner.id, owner.role),
                plot_number="DEMO-001",
                region="Addis Ababa",
                sub_city="Bole",
                kebele="03",
                area=250.0,
                property_type=PropertyType.RESIDENTIAL,
            )
            property_id = prop.id

    return SeedResult(user_ids={e: u.id for e, u in users.items()}, property_id=property_id)
