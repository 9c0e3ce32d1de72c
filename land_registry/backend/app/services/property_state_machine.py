# backend/app/services/property_state_machine.py
from __future__ import annotations

import logging
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..domain import audit
from ..domain.actor import Actor, Capability
from ..domain.enums import AuditAction, PropertyStatus, PropertyType
from ..domain.errors import InvalidStateTransition, NotOwnerError, ValidationError
from ..domain.workflow_states import PROPERTY_TARGET_EVENTS, PROPERTY_TRANSITIONS
from ..models import Property
from .ownership import lock_property, must_get_property, paginate
from .workflow_context import WorkflowContext

log = logging.getLogger("landreg.property")

# -----------------------------------------------------------------------------
# Property State Machine
# -----------------------------------------------------------------------------
# Sole writer of Property.status. Registration review moves a parcel through
#   pending -> documents_validated -> payment_completed -> approved
# with rejected / needs_update side exits and needs_update -> pending on
# resubmission. `transferred` is reachable only from complete_transfer via
# mark_transferred().
# -----------------------------------------------------------------------------

_TARGET_ACTIONS: dict[PropertyStatus, AuditAction] = {
    PropertyStatus.DOCUMENTS_VALIDATED: AuditAction.ALL_DOCUMENTS_VALIDATED,
    PropertyStatus.PAYMENT_COMPLETED: AuditAction.PAYMENT_WORKFLOW_COMPLETED,
    PropertyStatus.APPROVED: AuditAction.APPLICATION_APPROVED,
    PropertyStatus.REJECTED: AuditAction.APPLICATION_REJECTED,
    PropertyStatus.NEEDS_UPDATE: AuditAction.APPLICATION_UPDATE_REQUESTED,
    PropertyStatus.PENDING: AuditAction.APPLICATION_RESUBMITTED,
}

# PENDING (resubmission) is owner-only and checked separately.
_TARGET_CAPABILITIES: dict[PropertyStatus, Capability] = {
    PropertyStatus.DOCUMENTS_VALIDATED: Capability.REVIEW_PROPERTY,
    PropertyStatus.PAYMENT_COMPLETED: Capability.CONFIRM_PAYMENT,
    PropertyStatus.APPROVED: Capability.REVIEW_PROPERTY,
    PropertyStatus.REJECTED: Capability.REVIEW_PROPERTY,
    PropertyStatus.NEEDS_UPDATE: Capability.REVIEW_PROPERTY,
}

_NOTES_REQUIRED = frozenset({PropertyStatus.REJECTED, PropertyStatus.NEEDS_UPDATE})


def _clean(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = s.strip()
    return s or None


class PropertyStateMachine:
    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx
        self.db = ctx.db

    # -------------------------
    # Registration
    # -------------------------
    def register_property(
        self,
        actor: Actor,
        *,
        plot_number: str,
        region: str,
        sub_city: str,
        kebele: str,
        area: float,
        property_type: Union[PropertyType, str],
        street: Optional[str] = None,
        house_number: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Property:
        plot = _clean(plot_number)
        if not plot:
            raise ValidationError("Plot number is required")
        if not _clean(region) or not _clean(sub_city) or not _clean(kebele):
            raise ValidationError("Region, sub-city and kebele are required")
        if area is None or float(area) <= 0:
            raise ValidationError("Area must be a positive number", area=area)
        try:
            ptype = PropertyType(property_type)
        except ValueError:
            raise ValidationError(f"Unknown property type '{property_type}'") from None

        with self.ctx.unit_of_work("register_property"):
            dup = self.db.scalar(
                select(Property.id).where(
                    Property.sub_city == sub_city.strip(),
                    Property.kebele == kebele.strip(),
                    Property.plot_number == plot,
                )
            )
            if dup is not None:
                raise ValidationError("Plot number already registered", plot_number=plot)

            now = self.ctx.now()
            prop = Property(
                owner_id=actor.id,
                plot_number=plot,
                region=region.strip(),
                sub_city=sub_city.strip(),
                kebele=kebele.strip(),
                street=_clean(street),
                house_number=_clean(house_number),
                latitude=latitude,
                longitude=longitude,
                property_type=ptype.value,
                area=float(area),
                status=PropertyStatus.PENDING.value,
                has_active_dispute=False,
                current_transfer_id=None,
                registered_at=now,
                updated_at=now,
            )
            self.db.add(prop)
            try:
                self.db.flush()
            except IntegrityError:
                # concurrent registration of the same plot won the race
                raise ValidationError("Plot number already registered", plot_number=plot) from None

            audit.record(
                self.db,
                property_id=prop.id,
                actor=actor,
                action=AuditAction.APPLICATION_SUBMITTED,
                status=prop.status,
                notes="Property registration submitted",
                metadata={"plot_number": plot, "sub_city": prop.sub_city, "kebele": prop.kebele},
                created_at=now,
            )

        log.info(
            "property registered",
            extra={"property_id": prop.id, "user_id": actor.id, "action": AuditAction.APPLICATION_SUBMITTED.value},
        )
        return prop

    # -------------------------
    # Reads
    # -------------------------
    def get_property(self, property_id: int) -> Property:
        return must_get_property(self.db, property_id=property_id)

    def ensure_can_view(self, prop: Property, actor: Actor) -> None:
        if prop.owner_id == actor.id or actor.can(Capability.VIEW_ANY_RECORD):
            return
        raise NotOwnerError("You can only view records of your own properties")

    def list_properties_for_owner(
        self,
        actor: Actor,
        *,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Property], int]:
        q = select(Property).where(Property.owner_id == actor.id)
        if status:
            q = q.where(Property.status == PROPERTY_TRANSITIONS.coerce(status).value)
        return paginate(self.db, q.order_by(Property.registered_at.desc(), Property.id.desc()), page=page, limit=limit)

    def list_properties(
        self,
        actor: Actor,
        *,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Property], int]:
        """Staff listing across all owners, oldest registration first."""
        actor.require(Capability.VIEW_ANY_RECORD)
        q = select(Property)
        if status:
            q = q.where(Property.status == PROPERTY_TRANSITIONS.coerce(status).value)
        return paginate(self.db, q.order_by(Property.registered_at.asc(), Property.id.asc()), page=page, limit=limit)

    # -------------------------
    # Guarded transitions
    # -------------------------
    def request_transition(
        self,
        property_id: int,
        target_status: Union[PropertyStatus, str],
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Property:
        try:
            target = PropertyStatus(target_status)
        except ValueError:
            raise ValidationError(f"Unknown property status '{target_status}'") from None

        notes = _clean(notes)

        with self.ctx.unit_of_work("request_transition"):
            prop = lock_property(self.db, property_id=property_id)
            current = PROPERTY_TRANSITIONS.coerce(prop.status)

            if target == PropertyStatus.TRANSFERRED:
                raise InvalidStateTransition(
                    "property",
                    current.value,
                    PROPERTY_TARGET_EVENTS[target],
                    message="A property can only become transferred by completing a transfer",
                )

            if target == PropertyStatus.PENDING:
                if prop.owner_id != actor.id:
                    raise NotOwnerError("Only the owner can resubmit a property application")
            else:
                actor.require(_TARGET_CAPABILITIES[target])

            if target in _NOTES_REQUIRED and not notes:
                raise ValidationError(f"Notes are required when setting status to '{target.value}'")

            nxt = PROPERTY_TRANSITIONS.next_state(current, PROPERTY_TARGET_EVENTS[target])

            prop.status = nxt.value
            prop.updated_at = self.ctx.now()
            if target != PropertyStatus.PENDING:
                prop.reviewed_by_id = actor.id
                if notes:
                    prop.review_notes = notes

            audit.record(
                self.db,
                property_id=prop.id,
                actor=actor,
                action=_TARGET_ACTIONS[target],
                status=nxt.value,
                user_id=prop.owner_id,
                previous_status=current.value,
                notes=notes,
                created_at=prop.updated_at,
            )
            self.ctx.notify_after_commit(
                prop.owner_id,
                "property_status_changed",
                {"property_id": prop.id, "status": nxt.value, "previous_status": current.value},
            )

        log.info(
            "property %s: %s -> %s",
            prop.id,
            current.value,
            prop.status,
            extra={"property_id": prop.id, "user_id": actor.id, "action": _TARGET_ACTIONS[target].value},
        )
        return prop

    def mark_transferred(self, prop: Property) -> bool:
        """
        Called from complete_transfer inside its unit of work; no audit entry of
        its own. Only an approved property changes status; parcels in other
        states keep theirs while ownership moves.
        """
        if not PROPERTY_TRANSITIONS.allows(prop.status, "complete_transfer"):
            return False
        prop.status = PROPERTY_TRANSITIONS.next_state(prop.status, "complete_transfer").value
        prop.updated_at = self.ctx.now()
        return True
