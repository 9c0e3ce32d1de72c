# backend/app/services/dispute_workflow.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..domain import audit
from ..domain.actor import Actor, Capability
from ..domain.enums import AuditAction, DisputeOutcome, DisputeStatus, DisputeType, EvidenceType, Role
from ..domain.errors import DisputeAlreadyActive, ForbiddenError, NotFoundError, ValidationError
from ..domain.workflow_states import ACTIVE_DISPUTE_STATUSES, DISPUTE_TRANSITIONS
from ..models import Dispute, DisputeEvidence, DisputeTimelineEntry, Property
from .ownership import is_unique_violation, lock_property, must_get_dispute, must_get_user, paginate
from .workflow_context import WorkflowContext

log = logging.getLogger("landreg.disputes")

MAX_TITLE_LEN = 200
MAX_DESCRIPTION_LEN = 2000
MAX_WITHDRAW_REASON_LEN = 500


@dataclass(frozen=True)
class EvidenceUpload:
    document_type: Union[EvidenceType, str]
    document_name: str
    file_id: str
    filename: str
    file_type: str


def _clean(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = s.strip()
    return s or None


def _parse_evidence(evidence: Sequence[EvidenceUpload]) -> list[tuple[EvidenceType, EvidenceUpload]]:
    out: list[tuple[EvidenceType, EvidenceUpload]] = []
    for e in evidence:
        try:
            etype = EvidenceType(e.document_type)
        except ValueError:
            raise ValidationError(f"Unknown evidence type '{e.document_type}'") from None
        if not _clean(e.document_name) or not _clean(e.file_id):
            raise ValidationError("Each evidence item needs a name and a file id")
        out.append((etype, e))
    return out


class DisputeCoordinator:
    """
    Owns Dispute status and the property's has_active_dispute flag.
    The flag is recomputed from stored disputes whenever one closes.
    """

    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx
        self.db = ctx.db

    # -------------------------
    # helpers
    # -------------------------
    def _load_locked(self, dispute_id: int) -> tuple[Dispute, Property]:
        d = must_get_dispute(self.db, dispute_id=dispute_id)
        prop = lock_property(self.db, property_id=d.property_id)
        d = self.db.scalar(
            select(Dispute).where(Dispute.id == d.id).execution_options(populate_existing=True)
        )
        return d, prop

    def _active_dispute_ids(self, property_id: int) -> list[int]:
        q = select(Dispute.id).where(
            Dispute.property_id == int(property_id),
            Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
        )
        return list(self.db.scalars(q).all())

    def _recompute_flag(self, prop: Property) -> None:
        self.db.flush()
        prop.has_active_dispute = self.active_dispute_count(prop.id) > 0
        prop.updated_at = self.ctx.now()

    def _move(self, d: Dispute, event: str) -> str:
        prev = d.status
        d.status = DISPUTE_TRANSITIONS.next_state(prev, event).value
        d.updated_at = self.ctx.now()
        return prev

    def _timeline(self, d: Dispute, actor: Actor, action: str, notes: Optional[str] = None) -> None:
        d.timeline.append(
            DisputeTimelineEntry(
                dispute_id=d.id,
                action=action,
                performed_by_id=actor.id,
                performed_by_role=actor.role.value,
                notes=notes,
                created_at=self.ctx.now(),
            )
        )

    def _add_evidence_rows(self, d: Dispute, parsed: list[tuple[EvidenceType, EvidenceUpload]]) -> None:
        now = self.ctx.now()
        for etype, e in parsed:
            d.evidence.append(
                DisputeEvidence(
                    dispute_id=d.id,
                    document_type=etype.value,
                    document_name=e.document_name.strip(),
                    file_id=e.file_id.strip(),
                    filename=e.filename,
                    file_type=e.file_type,
                    uploaded_at=now,
                )
            )

    def _audit(
        self,
        d: Dispute,
        actor: Actor,
        action: AuditAction,
        *,
        previous_status: Optional[str],
        notes: Optional[str] = None,
        **metadata,
    ) -> None:
        audit.record(
            self.db,
            property_id=d.property_id,
            actor=actor,
            action=action,
            status=d.status,
            user_id=d.disputant_id,
            previous_status=previous_status,
            notes=notes,
            metadata={"dispute_id": d.id, **metadata},
            created_at=self.ctx.now(),
        )

    def _logged(self, d: Dispute, actor: Actor, action: AuditAction, prev: Optional[str]) -> None:
        log.info(
            "dispute %s: %s -> %s",
            d.id,
            prev,
            d.status,
            extra={
                "dispute_id": d.id,
                "property_id": d.property_id,
                "user_id": actor.id,
                "action": action.value,
            },
        )

    # -------------------------
    # disputant operations
    # -------------------------
    def submit_dispute(
        self,
        property_id: int,
        actor: Actor,
        dispute_type: Union[DisputeType, str],
        title: str,
        description: str,
        evidence: Sequence[EvidenceUpload] = (),
    ) -> Dispute:
        try:
            dtype = DisputeType(dispute_type)
        except ValueError:
            raise ValidationError(f"Unknown dispute type '{dispute_type}'") from None
        title = _clean(title)
        description = _clean(description)
        if not title or not description:
            raise ValidationError("Title and description are required")
        if len(title) > MAX_TITLE_LEN:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LEN} characters")
        if len(description) > MAX_DESCRIPTION_LEN:
            raise ValidationError(f"Description must be at most {MAX_DESCRIPTION_LEN} characters")
        parsed = _parse_evidence(evidence)

        with self.ctx.unit_of_work("submit_dispute"):
            prop = lock_property(self.db, property_id=property_id)

            active = self._active_dispute_ids(prop.id)
            if active:
                raise DisputeAlreadyActive(property_id=prop.id, active_id=active[0])

            now = self.ctx.now()
            d = Dispute(
                property_id=prop.id,
                disputant_id=actor.id,
                dispute_type=dtype.value,
                title=title,
                description=description,
                status=DisputeStatus.SUBMITTED.value,
                submitted_at=now,
                updated_at=now,
            )
            self.db.add(d)
            try:
                self.db.flush()
            except IntegrityError as e:
                if is_unique_violation(e, "uq_disputes_active_property", "disputes.property_id"):
                    raise DisputeAlreadyActive(property_id=prop.id) from None
                raise

            self._add_evidence_rows(d, parsed)
            prop.has_active_dispute = True
            prop.updated_at = now

            self._timeline(d, actor, "Dispute submitted", title)
            self._audit(
                d,
                actor,
                AuditAction.DISPUTE_SUBMITTED,
                previous_status=None,
                notes=title,
                dispute_type=dtype.value,
                evidence_count=len(parsed),
            )
            if prop.owner_id != actor.id:
                self.ctx.notify_after_commit(
                    prop.owner_id, "dispute_submitted", {"dispute_id": d.id, "property_id": prop.id}
                )

        self._logged(d, actor, AuditAction.DISPUTE_SUBMITTED, None)
        return d

    def withdraw_dispute(self, dispute_id: int, actor: Actor, reason: Optional[str] = None) -> Dispute:
        reason = _clean(reason)
        if reason and len(reason) > MAX_WITHDRAW_REASON_LEN:
            raise ValidationError(f"Withdrawal reason must be at most {MAX_WITHDRAW_REASON_LEN} characters")

        with self.ctx.unit_of_work("withdraw_dispute"):
            d, prop = self._load_locked(dispute_id)
            if d.disputant_id != actor.id:
                raise ForbiddenError("Only the disputant can withdraw this dispute", dispute_id=d.id)

            prev = self._move(d, "withdraw")
            self._recompute_flag(prop)
            self._timeline(d, actor, "Dispute withdrawn", reason)
            self._audit(d, actor, AuditAction.DISPUTE_WITHDRAWN, previous_status=prev, notes=reason)

        self._logged(d, actor, AuditAction.DISPUTE_WITHDRAWN, prev)
        return d

    def add_evidence(self, dispute_id: int, evidence: Sequence[EvidenceUpload], actor: Actor) -> Dispute:
        if not evidence:
            raise ValidationError("At least one evidence item is required")
        parsed = _parse_evidence(evidence)

        with self.ctx.unit_of_work("add_evidence"):
            d, prop = self._load_locked(dispute_id)
            if d.disputant_id != actor.id:
                raise ForbiddenError("Only the disputant can add evidence to this dispute", dispute_id=d.id)

            prev = self._move(d, "add_evidence")
            self._add_evidence_rows(d, parsed)
            self._timeline(d, actor, "Evidence added", f"{len(parsed)} item(s) added")
            self._audit(
                d,
                actor,
                AuditAction.DISPUTE_EVIDENCE_ADDED,
                previous_status=prev,
                evidence_count=len(parsed),
            )

        self._logged(d, actor, AuditAction.DISPUTE_EVIDENCE_ADDED, prev)
        return d

    # -------------------------
    # officer operations
    # -------------------------
    def begin_review(self, dispute_id: int, actor: Actor, notes: Optional[str] = None) -> Dispute:
        actor.require(Capability.MANAGE_DISPUTE)
        notes = _clean(notes)

        with self.ctx.unit_of_work("begin_review"):
            d, prop = self._load_locked(dispute_id)
            prev = self._move(d, "begin_review")
            self._timeline(d, actor, "Review started", notes)
            self._audit(d, actor, AuditAction.DISPUTE_UNDER_REVIEW, previous_status=prev, notes=notes)
            self.ctx.notify_after_commit(d.disputant_id, "dispute_under_review", {"dispute_id": d.id})

        self._logged(d, actor, AuditAction.DISPUTE_UNDER_REVIEW, prev)
        return d

    def assign_dispute(
        self,
        dispute_id: int,
        assignee_id: int,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Dispute:
        actor.require(Capability.ASSIGN_DISPUTE)
        notes = _clean(notes)

        with self.ctx.unit_of_work("assign_dispute"):
            assignee = must_get_user(self.db, user_id=assignee_id)
            if assignee.role != Role.LAND_OFFICER.value:
                raise ValidationError("Disputes can only be assigned to a land officer", assignee_id=assignee.id)

            d, prop = self._load_locked(dispute_id)
            prev = self._move(d, "assign")
            d.assigned_to_id = assignee.id
            d.assigned_at = self.ctx.now()

            self._timeline(d, actor, "Assigned for investigation", notes or f"Assigned to {assignee.email}")
            self._audit(
                d,
                actor,
                AuditAction.DISPUTE_ASSIGNED,
                previous_status=prev,
                notes=notes,
                assigned_to_id=assignee.id,
            )
            self.ctx.notify_after_commit(d.disputant_id, "dispute_assigned", {"dispute_id": d.id})
            self.ctx.notify_after_commit(assignee.id, "dispute_assigned", {"dispute_id": d.id})

        self._logged(d, actor, AuditAction.DISPUTE_ASSIGNED, prev)
        return d

    def schedule_mediation(self, dispute_id: int, actor: Actor, notes: Optional[str] = None) -> Dispute:
        actor.require(Capability.MANAGE_DISPUTE)
        notes = _clean(notes)

        with self.ctx.unit_of_work("schedule_mediation"):
            d, prop = self._load_locked(dispute_id)
            prev = self._move(d, "schedule_mediation")
            self._timeline(d, actor, "Mediation scheduled", notes)
            self._audit(d, actor, AuditAction.DISPUTE_MEDIATION_SCHEDULED, previous_status=prev, notes=notes)
            self.ctx.notify_after_commit(d.disputant_id, "dispute_mediation_scheduled", {"dispute_id": d.id})

        self._logged(d, actor, AuditAction.DISPUTE_MEDIATION_SCHEDULED, prev)
        return d

    def resolve_dispute(
        self,
        dispute_id: int,
        outcome: Union[DisputeOutcome, str],
        notes: str,
        actor: Actor,
        action_required: Optional[str] = None,
    ) -> Dispute:
        actor.require(Capability.MANAGE_DISPUTE)
        try:
            outcome = DisputeOutcome(outcome)
        except ValueError:
            raise ValidationError(f"Unknown resolution outcome '{outcome}'") from None
        notes = _clean(notes)
        if not notes:
            raise ValidationError("Resolution notes are required")

        with self.ctx.unit_of_work("resolve_dispute"):
            d, prop = self._load_locked(dispute_id)
            prev = self._move(d, "resolve")
            now = self.ctx.now()
            d.resolution_outcome = outcome.value
            d.resolution_notes = notes
            d.resolution_action_required = _clean(action_required)
            d.resolved_by_id = actor.id
            d.resolved_at = now

            self._recompute_flag(prop)
            self._timeline(d, actor, "Dispute resolved", notes)
            self._audit(
                d,
                actor,
                AuditAction.DISPUTE_RESOLVED,
                previous_status=prev,
                notes=notes,
                outcome=outcome.value,
            )
            body = {"dispute_id": d.id, "property_id": d.property_id, "outcome": outcome.value}
            self.ctx.notify_after_commit(d.disputant_id, "dispute_resolved", body)
            if prop.owner_id != d.disputant_id:
                self.ctx.notify_after_commit(prop.owner_id, "dispute_resolved", body)

        self._logged(d, actor, AuditAction.DISPUTE_RESOLVED, prev)
        return d

    # -------------------------
    # reads
    # -------------------------
    def get_dispute(self, dispute_id: int, actor: Actor) -> Dispute:
        d = must_get_dispute(self.db, dispute_id=dispute_id)
        if d.disputant_id == actor.id or actor.can(Capability.VIEW_ANY_RECORD):
            return d
        raise NotFoundError("dispute", dispute_id, message="Dispute not found")

    def list_disputes_for_user(
        self,
        actor: Actor,
        *,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Dispute], int]:
        q = select(Dispute).where(Dispute.disputant_id == actor.id)
        if status:
            q = q.where(Dispute.status == DISPUTE_TRANSITIONS.coerce(status).value)
        return paginate(self.db, q.order_by(Dispute.submitted_at.desc(), Dispute.id.desc()), page=page, limit=limit)

    def list_disputes(
        self,
        actor: Actor,
        *,
        status: Optional[str] = None,
        property_id: Optional[int] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Dispute], int]:
        actor.require(Capability.MANAGE_DISPUTE)
        q = select(Dispute)
        if status:
            q = q.where(Dispute.status == DISPUTE_TRANSITIONS.coerce(status).value)
        if property_id is not None:
            q = q.where(Dispute.property_id == int(property_id))
        return paginate(self.db, q.order_by(Dispute.submitted_at.desc(), Dispute.id.desc()), page=page, limit=limit)

    def active_dispute_count(self, property_id: int) -> int:
        q = select(func.count(Dispute.id)).where(
            Dispute.property_id == int(property_id),
            Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
        )
        return int(self.db.scalar(q) or 0)
