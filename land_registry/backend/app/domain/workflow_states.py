# backend/app/domain/workflow_states.py
from __future__ import annotations

from enum import Enum
from typing import Generic, Iterable, Mapping, TypeVar, Union

from .enums import DisputeStatus, PropertyStatus, TransferStatus
from .errors import InvalidStateTransition

# -----------------------------------------------------------------------------
# Explicit transition tables
# -----------------------------------------------------------------------------
# One table per workflow: (current state, event) -> next state.
# Coordinators never assign a status directly; they ask the table first.
# -----------------------------------------------------------------------------

S = TypeVar("S", bound=Enum)


class TransitionTable(Generic[S]):
    def __init__(
        self,
        entity: str,
        states: type[S],
        edges: Mapping[tuple[S, str], S],
        terminal: Iterable[S],
    ):
        self.entity = entity
        self.states = states
        self._edges = dict(edges)
        self.terminal = frozenset(terminal)

    def coerce(self, state: Union[S, str]) -> S:
        return state if isinstance(state, self.states) else self.states(str(state))

    def allows(self, current: Union[S, str], event: str) -> bool:
        return (self.coerce(current), event) in self._edges

    def next_state(self, current: Union[S, str], event: str) -> S:
        cur = self.coerce(current)
        nxt = self._edges.get((cur, event))
        if nxt is None:
            raise InvalidStateTransition(self.entity, cur.value, event)
        return nxt

    def sources(self, event: str) -> frozenset[S]:
        return frozenset(s for (s, e) in self._edges if e == event)

    def events(self) -> frozenset[str]:
        return frozenset(e for (_, e) in self._edges)

    def is_terminal(self, state: Union[S, str]) -> bool:
        return self.coerce(state) in self.terminal

    @property
    def active_states(self) -> tuple[S, ...]:
        return tuple(s for s in self.states if s not in self.terminal)


# -----------------------------
# Property registration
# -----------------------------
P = PropertyStatus

_PROPERTY_EDGES: dict[tuple[PropertyStatus, str], PropertyStatus] = {
    (P.PENDING, "validate_documents"): P.DOCUMENTS_VALIDATED,
    (P.DOCUMENTS_VALIDATED, "complete_payment"): P.PAYMENT_COMPLETED,
    (P.PAYMENT_COMPLETED, "approve"): P.APPROVED,
    (P.NEEDS_UPDATE, "resubmit"): P.PENDING,
    (P.APPROVED, "complete_transfer"): P.TRANSFERRED,
}
for _s in (P.PENDING, P.DOCUMENTS_VALIDATED, P.PAYMENT_COMPLETED):
    _PROPERTY_EDGES[(_s, "reject")] = P.REJECTED
    _PROPERTY_EDGES[(_s, "request_update")] = P.NEEDS_UPDATE

# `transferred` has no terminal meaning for the parcel itself; it is simply
# unreachable except through a completed transfer.
PROPERTY_TRANSITIONS: TransitionTable[PropertyStatus] = TransitionTable(
    "property",
    PropertyStatus,
    _PROPERTY_EDGES,
    terminal=(),
)

# target status -> event, for request_transition(target)
PROPERTY_TARGET_EVENTS: dict[PropertyStatus, str] = {
    P.DOCUMENTS_VALIDATED: "validate_documents",
    P.PAYMENT_COMPLETED: "complete_payment",
    P.APPROVED: "approve",
    P.REJECTED: "reject",
    P.NEEDS_UPDATE: "request_update",
    P.PENDING: "resubmit",
    P.TRANSFERRED: "complete_transfer",
}


# -----------------------------
# Property transfer
# -----------------------------
T = TransferStatus

_TRANSFER_EDGES: dict[tuple[TransferStatus, str], TransferStatus] = {
    # partial upload, owner keeps adding
    (T.INITIATED, "stage_documents"): T.DOCUMENTS_PENDING,
    (T.DOCUMENTS_PENDING, "stage_documents"): T.DOCUMENTS_PENDING,
    # upload + submit for review
    (T.INITIATED, "submit_documents"): T.UNDER_REVIEW,
    (T.DOCUMENTS_PENDING, "submit_documents"): T.UNDER_REVIEW,
    # resubmission after a review asked for changes
    (T.UNDER_REVIEW, "resubmit_documents"): T.UNDER_REVIEW,
    (T.UNDER_REVIEW, "review_passed"): T.VERIFICATION_PENDING,
    (T.UNDER_REVIEW, "review_with_issues"): T.UNDER_REVIEW,
    (T.VERIFICATION_PENDING, "record_compliance"): T.VERIFICATION_PENDING,
    (T.VERIFICATION_PENDING, "fail_compliance"): T.REJECTED,
    (T.VERIFICATION_PENDING, "approve"): T.APPROVED,
    (T.APPROVED, "complete"): T.COMPLETED,
}
for _s in (T.INITIATED, T.DOCUMENTS_PENDING, T.UNDER_REVIEW):
    _TRANSFER_EDGES[(_s, "cancel")] = T.CANCELLED
for _s in (T.INITIATED, T.DOCUMENTS_PENDING, T.UNDER_REVIEW, T.VERIFICATION_PENDING, T.APPROVED):
    _TRANSFER_EDGES[(_s, "reject")] = T.REJECTED

TRANSFER_TRANSITIONS: TransitionTable[TransferStatus] = TransitionTable(
    "transfer",
    TransferStatus,
    _TRANSFER_EDGES,
    terminal=(T.COMPLETED, T.CANCELLED, T.REJECTED),
)


# -----------------------------
# Dispute
# -----------------------------
D = DisputeStatus

_DISPUTE_EDGES: dict[tuple[DisputeStatus, str], DisputeStatus] = {
    (D.SUBMITTED, "begin_review"): D.UNDER_REVIEW,
    (D.UNDER_REVIEW, "assign"): D.INVESTIGATION,
    (D.INVESTIGATION, "schedule_mediation"): D.MEDIATION,
}
for _s in (D.UNDER_REVIEW, D.INVESTIGATION, D.MEDIATION):
    _DISPUTE_EDGES[(_s, "resolve")] = D.RESOLVED
for _s in (D.SUBMITTED, D.UNDER_REVIEW, D.INVESTIGATION):
    _DISPUTE_EDGES[(_s, "withdraw")] = D.WITHDRAWN
for _s in (D.SUBMITTED, D.UNDER_REVIEW, D.INVESTIGATION, D.MEDIATION):
    _DISPUTE_EDGES[(_s, "add_evidence")] = _s

DISPUTE_TRANSITIONS: TransitionTable[DisputeStatus] = TransitionTable(
    "dispute",
    DisputeStatus,
    _DISPUTE_EDGES,
    terminal=(D.RESOLVED, D.WITHDRAWN),
)

ACTIVE_TRANSFER_STATUSES: tuple[str, ...] = tuple(s.value for s in TRANSFER_TRANSITIONS.active_states)
ACTIVE_DISPUTE_STATUSES: tuple[str, ...] = tuple(s.value for s in DISPUTE_TRANSITIONS.active_states)
