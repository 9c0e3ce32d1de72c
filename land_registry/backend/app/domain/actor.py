# backend/app/domain/actor.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from .enums import Role
from .errors import ForbiddenError


class Capability(str, Enum):
    REVIEW_PROPERTY = "review_property"
    CONFIRM_PAYMENT = "confirm_payment"
    REVIEW_TRANSFER = "review_transfer"
    DECIDE_TRANSFER = "decide_transfer"
    COMPLETE_TRANSFER = "complete_transfer"
    LIST_ALL_TRANSFERS = "list_all_transfers"
    MANAGE_DISPUTE = "manage_dispute"
    ASSIGN_DISPUTE = "assign_dispute"
    VIEW_ANY_RECORD = "view_any_record"
    VIEW_ALL_LOGS = "view_all_logs"


_OFFICER_CAPS = frozenset(
    {
        Capability.REVIEW_PROPERTY,
        Capability.CONFIRM_PAYMENT,
        Capability.REVIEW_TRANSFER,
        Capability.DECIDE_TRANSFER,
        Capability.LIST_ALL_TRANSFERS,
        Capability.MANAGE_DISPUTE,
        Capability.VIEW_ANY_RECORD,
    }
)

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: frozenset(),
    Role.LAND_OFFICER: _OFFICER_CAPS,
    Role.ADMIN: _OFFICER_CAPS
    | {Capability.COMPLETE_TRANSFER, Capability.ASSIGN_DISPUTE, Capability.VIEW_ALL_LOGS},
    # payment gateway callbacks and maintenance jobs
    Role.SYSTEM: frozenset({Capability.CONFIRM_PAYMENT}),
}


@dataclass(frozen=True)
class Actor:
    """
    Who is calling. Resolved once at the HTTP boundary (see auth.get_actor)
    and passed into every coordinator call.
    """

    id: int
    role: Role

    @classmethod
    def of(cls, user_id: int, role: Union[Role, str]) -> "Actor":
        return cls(id=int(user_id), role=Role(role))

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, frozenset())

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            raise ForbiddenError(
                f"Role '{self.role.value}' is not allowed to {capability.value.replace('_', ' ')}",
                capability=capability.value,
            )
