# backend/app/services/transfer_workflow.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..domain import audit
from ..domain.actor import Actor, Capability
from ..domain.compliance_checks import ComplianceVerdict, SubCheck, aggregate_compliance
from ..domain.enums import (
    REVIEW_VERDICT_TO_DOCUMENT_STATUS,
    ApprovalDecision,
    AuditAction,
    ComplianceCheckType,
    Currency,
    DocumentReviewVerdict,
    DocumentVerificationStatus,
    TransferDocumentType,
    TransferStatus,
    TransferType,
)
from ..domain.errors import (
    ActiveDisputeBlocksTransfer,
    ComplianceFailure,
    InvalidStateTransition,
    InvalidTransferee,
    NotFoundError,
    NotOwnerError,
    SelfTransferNotAllowed,
    TransferAlreadyActive,
    ValidationError,
)
from ..domain.workflow_states import ACTIVE_TRANSFER_STATUSES, TRANSFER_TRANSITIONS
from ..models import (
    OwnershipRecord,
    Property,
    PropertyTransfer,
    TransferComplianceCheck,
    TransferDocument,
    TransferTimelineEntry,
)
from .ownership import (
    find_user_by_email,
    is_unique_violation,
    lock_property,
    must_get_property,
    must_get_transfer,
    paginate,
)
from .property_state_machine import PropertyStateMachine
from .workflow_context import WorkflowContext

log = logging.getLogger("landreg.transfers")

MAX_REASON_LEN = 1000
MAX_CANCEL_REASON_LEN = 500

_REVISION_STATUSES = frozenset(
    {DocumentVerificationStatus.REJECTED.value, DocumentVerificationStatus.NEEDS_REVISION.value}
)


@dataclass(frozen=True)
class DocumentUpload:
    document_type: Union[TransferDocumentType, str]
    document_name: str
    file_id: str
    filename: str
    file_type: str


@dataclass(frozen=True)
class DocumentReview:
    document_id: int
    status: Union[DocumentReviewVerdict, str]
    notes: str


def _clean(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = s.strip()
    return s or None


class TransferCoordinator:
    """
    Drives one PropertyTransfer from initiation to completion.

    Every operation:
      - runs in one unit of work (property row lock re-read inside it)
      - asks TRANSFER_TRANSITIONS for the edge before mutating
      - appends one timeline entry and writes exactly one audit entry
    """

    def __init__(self, ctx: WorkflowContext):
        self.ctx = ctx
        self.db = ctx.db
        self.properties = PropertyStateMachine(ctx)

    # -------------------------
    # helpers
    # -------------------------
    def _load_locked(self, transfer_id: int) -> tuple[PropertyTransfer, Property]:
        t = must_get_transfer(self.db, transfer_id=transfer_id)
        prop = lock_property(self.db, property_id=t.property_id)
        # re-read under the lock; another request may have moved it
        t = self.db.scalar(
            select(PropertyTransfer)
            .where(PropertyTransfer.id == t.id)
            .execution_options(populate_existing=True)
        )
        return t, prop

    def _active_transfer_id(self, property_id: int) -> Optional[int]:
        return self.db.scalar(
            select(PropertyTransfer.id).where(
                PropertyTransfer.property_id == int(property_id),
                PropertyTransfer.status.in_(ACTIVE_TRANSFER_STATUSES),
            )
        )

    def _move(self, t: PropertyTransfer, event: str) -> tuple[str, str]:
        prev = t.status
        t.status = TRANSFER_TRANSITIONS.next_state(prev, event).value
        t.updated_at = self.ctx.now()
        return prev, t.status

    def _timeline(self, t: PropertyTransfer, actor: Actor, action: str, notes: Optional[str] = None) -> None:
        t.timeline.append(
            TransferTimelineEntry(
                transfer_id=t.id,
                action=action,
                performed_by_id=actor.id,
                performed_by_role=actor.role.value,
                notes=notes,
                created_at=self.ctx.now(),
            )
        )

    def _audit(
        self,
        t: PropertyTransfer,
        actor: Actor,
        action: AuditAction,
        *,
        previous_status: Optional[str],
        notes: Optional[str] = None,
        **metadata,
    ) -> None:
        audit.record(
            self.db,
            property_id=t.property_id,
            actor=actor,
            action=action,
            status=t.status,
            user_id=t.previous_owner_id,
            previous_status=previous_status,
            notes=notes,
            metadata={"transfer_id": t.id, **metadata},
            created_at=self.ctx.now(),
        )

    def _notify_parties(self, t: PropertyTransfer, event: str, **payload) -> None:
        body = {"transfer_id": t.id, "property_id": t.property_id, "status": t.status, **payload}
        self.ctx.notify_after_commit(t.previous_owner_id, event, body)
        self.ctx.notify_after_commit(t.new_owner_id, event, body)

    @staticmethod
    def _release_lock(prop: Property, t: PropertyTransfer) -> None:
        if prop.current_transfer_id == t.id:
            prop.current_transfer_id = None

    @staticmethod
    def _require_previous_owner(t: PropertyTransfer, actor: Actor, message: str) -> None:
        if t.previous_owner_id != actor.id:
            raise NotOwnerError(message, transfer_id=t.id)

    def _logged(self, t: PropertyTransfer, actor: Actor, action: AuditAction, prev: Optional[str]) -> None:
        log.info(
            "transfer %s: %s -> %s",
            t.id,
            prev,
            t.status,
            extra={
                "transfer_id": t.id,
                "property_id": t.property_id,
                "user_id": actor.id,
                "action": action.value,
            },
        )

    def compliance_verdict(self, t: PropertyTransfer) -> ComplianceVerdict:
        by_type = {c.check_type: c for c in t.compliance_checks}

        def sub(check_type: ComplianceCheckType) -> Optional[SubCheck]:
            row = by_type.get(check_type.value)
            if row is None:
                return None
            return SubCheck.of(row.check_type, row.status, row.risk_level, row.notes)

        return aggregate_compliance(
            sub(ComplianceCheckType.ETHIOPIAN_LAW),
            sub(ComplianceCheckType.TAX_CLEARANCE),
            sub(ComplianceCheckType.FRAUD_PREVENTION),
        )

    # -------------------------
    # initiate
    # -------------------------
    def initiate_transfer(
        self,
        property_id: int,
        new_owner_email: str,
        transfer_type: Union[TransferType, str],
        transfer_reason: str,
        actor: Actor,
        *,
        value_amount: float = 0.0,
        currency: Union[Currency, str] = Currency.ETB,
    ) -> PropertyTransfer:
        try:
            ttype = TransferType(transfer_type)
        except ValueError:
            raise ValidationError(f"Unknown transfer type '{transfer_type}'") from None
        try:
            cur = Currency(currency or Currency.ETB)
        except ValueError:
            raise ValidationError(f"Unsupported currency '{currency}'") from None
        reason = _clean(transfer_reason)
        if not reason:
            raise ValidationError("Transfer reason is required")
        if len(reason) > MAX_REASON_LEN:
            raise ValidationError(f"Transfer reason must be at most {MAX_REASON_LEN} characters")
        amount = float(value_amount or 0.0)
        if amount < 0:
            raise ValidationError("Transfer value cannot be negative")

        with self.ctx.unit_of_work("initiate_transfer"):
            prop = lock_property(self.db, property_id=property_id)

            if prop.owner_id != actor.id:
                raise NotOwnerError("You can only transfer your own properties", property_id=prop.id)
            if prop.has_active_dispute:
                raise ActiveDisputeBlocksTransfer(property_id=prop.id)

            active_id = self._active_transfer_id(prop.id)
            if active_id is not None:
                raise TransferAlreadyActive(property_id=prop.id, active_id=active_id)

            new_owner = find_user_by_email(self.db, new_owner_email)
            if new_owner is None:
                raise InvalidTransferee(new_owner_email)
            if new_owner.id == prop.owner_id:
                raise SelfTransferNotAllowed(property_id=prop.id)

            now = self.ctx.now()
            t = PropertyTransfer(
                property_id=prop.id,
                previous_owner_id=prop.owner_id,
                new_owner_id=new_owner.id,
                transfer_type=ttype.value,
                transfer_reason=reason,
                transfer_value_amount=amount,
                transfer_value_currency=cur.value,
                status=TransferStatus.INITIATED.value,
                initiated_at=now,
                updated_at=now,
            )
            self.db.add(t)
            try:
                self.db.flush()
            except IntegrityError as e:
                if is_unique_violation(e, "uq_property_transfers_active_property", "property_transfers.property_id"):
                    raise TransferAlreadyActive(property_id=prop.id) from None
                raise

            prop.current_transfer_id = t.id
            self._timeline(t, actor, "Transfer initiated", f"Transfer to {new_owner.email} initiated")
            self._audit(
                t,
                actor,
                AuditAction.TRANSFER_INITIATED,
                previous_status=None,
                notes=reason,
                new_owner_id=new_owner.id,
                transfer_type=ttype.value,
            )
            self.ctx.notify_after_commit(
                new_owner.id,
                "transfer_initiated",
                {"transfer_id": t.id, "property_id": prop.id, "previous_owner_id": prop.owner_id},
            )

        self._logged(t, actor, AuditAction.TRANSFER_INITIATED, None)
        return t

    # -------------------------
    # documents
    # -------------------------
    def upload_transfer_documents(
        self,
        transfer_id: int,
        documents: Sequence[DocumentUpload],
        actor: Actor,
        *,
        submit: bool = True,
    ) -> PropertyTransfer:
        if not documents:
            raise ValidationError("At least one document is required")
        parsed: list[tuple[TransferDocumentType, DocumentUpload]] = []
        for d in documents:
            try:
                dtype = TransferDocumentType(d.document_type)
            except ValueError:
                raise ValidationError(f"Unknown document type '{d.document_type}'") from None
            if not _clean(d.document_name) or not _clean(d.file_id):
                raise ValidationError("Each document needs a name and a file id")
            parsed.append((dtype, d))

        with self.ctx.unit_of_work("upload_transfer_documents"):
            t, prop = self._load_locked(transfer_id)
            self._require_previous_owner(t, actor, "Only the current owner can upload transfer documents")

            current = TRANSFER_TRANSITIONS.coerce(t.status)
            if current == TransferStatus.UNDER_REVIEW:
                if not any(d.verification_status in _REVISION_STATUSES for d in t.documents):
                    raise InvalidStateTransition(
                        "transfer",
                        current.value,
                        "resubmit_documents",
                        message="Documents can only be resubmitted after a review requested changes",
                    )
                event = "resubmit_documents"
            else:
                event = "submit_documents" if submit else "stage_documents"

            # validates the edge before anything is written
            TRANSFER_TRANSITIONS.next_state(current, event)

            now = self.ctx.now()
            for dtype, d in parsed:
                t.documents.append(
                    TransferDocument(
                        transfer_id=t.id,
                        document_type=dtype.value,
                        document_name=d.document_name.strip(),
                        file_id=d.file_id.strip(),
                        filename=d.filename,
                        file_type=d.file_type,
                        uploaded_at=now,
                        verification_status=DocumentVerificationStatus.PENDING.value,
                    )
                )

            prev, _ = self._move(t, event)
            self._timeline(t, actor, "Documents uploaded", f"{len(parsed)} document(s) uploaded")
            self._audit(
                t,
                actor,
                AuditAction.TRANSFER_DOCUMENTS_UPLOADED,
                previous_status=prev,
                document_count=len(parsed),
                submitted=(t.status == TransferStatus.UNDER_REVIEW.value),
            )

        self._logged(t, actor, AuditAction.TRANSFER_DOCUMENTS_UPLOADED, prev)
        return t

    def submit_transfer_documents(self, transfer_id: int, actor: Actor) -> PropertyTransfer:
        with self.ctx.unit_of_work("submit_transfer_documents"):
            t, prop = self._load_locked(transfer_id)
            self._require_previous_owner(t, actor, "Only the current owner can submit transfer documents")

            TRANSFER_TRANSITIONS.next_state(t.status, "submit_documents")
            if not t.documents:
                raise ValidationError("Upload at least one document before submitting", transfer_id=t.id)

            prev, _ = self._move(t, "submit_documents")
            self._timeline(t, actor, "Documents submitted for review")
            self._audit(
                t,
                actor,
                AuditAction.TRANSFER_DOCUMENTS_SUBMITTED,
                previous_status=prev,
                document_count=len(t.documents),
            )

        self._logged(t, actor, AuditAction.TRANSFER_DOCUMENTS_SUBMITTED, prev)
        return t

    def review_transfer_documents(
        self,
        transfer_id: int,
        reviews: Sequence[DocumentReview],
        actor: Actor,
    ) -> PropertyTransfer:
        actor.require(Capability.REVIEW_TRANSFER)
        if not reviews:
            raise ValidationError("At least one document review is required")
        parsed: list[tuple[int, DocumentVerificationStatus, str]] = []
        for r in reviews:
            try:
                verdict = DocumentReviewVerdict(r.status)
            except ValueError:
                raise ValidationError(f"Unknown review status '{r.status}'") from None
            notes = _clean(r.notes)
            if not notes:
                raise ValidationError("Review notes are required for every document", document_id=r.document_id)
            parsed.append((int(r.document_id), REVIEW_VERDICT_TO_DOCUMENT_STATUS[verdict], notes))

        with self.ctx.unit_of_work("review_transfer_documents"):
            t, prop = self._load_locked(transfer_id)
            if not TRANSFER_TRANSITIONS.allows(t.status, "review_passed"):
                raise InvalidStateTransition("transfer", t.status, "review_documents")

            docs = {d.id: d for d in t.documents}
            unknown = [doc_id for doc_id, _, _ in parsed if doc_id not in docs]
            if unknown:
                raise ValidationError("Unknown document id(s) for this transfer", document_ids=unknown)

            now = self.ctx.now()
            for doc_id, status, notes in parsed:
                d = docs[doc_id]
                d.verification_status = status.value
                d.verified_by_id = actor.id
                d.verified_at = now
                d.verification_notes = notes

            # decided by this round's items, not by documents flagged earlier
            all_verified = all(status == DocumentVerificationStatus.VERIFIED for _, status, _ in parsed)
            prev, _ = self._move(t, "review_passed" if all_verified else "review_with_issues")
            t.reviewed_by_id = actor.id

            summary = "All documents verified" if all_verified else "Document review requested changes"
            self._timeline(t, actor, "Documents reviewed", summary)
            self._audit(
                t,
                actor,
                AuditAction.TRANSFER_DOCUMENTS_REVIEWED,
                previous_status=prev,
                notes=summary,
                reviewed=[{"document_id": i, "status": s.value} for i, s, _ in parsed],
            )
            self._notify_parties(t, "transfer_documents_reviewed", all_verified=all_verified)

        self._logged(t, actor, AuditAction.TRANSFER_DOCUMENTS_REVIEWED, prev)
        return t

    # -------------------------
    # compliance
    # -------------------------
    def perform_compliance_checks(
        self,
        transfer_id: int,
        checks: Sequence[SubCheck],
        actor: Actor,
    ) -> PropertyTransfer:
        actor.require(Capability.REVIEW_TRANSFER)
        if not checks:
            raise ValidationError("At least one compliance check is required")
        seen: set[ComplianceCheckType] = set()
        for c in checks:
            if c.check_type in seen:
                raise ValidationError(f"Duplicate compliance check '{c.check_type.value}'")
            seen.add(c.check_type)
            if c.risk_level is not None and c.check_type != ComplianceCheckType.FRAUD_PREVENTION:
                raise ValidationError("Risk level applies to the fraud prevention check only")
            if c.is_failing and not _clean(c.notes):
                raise ValidationError(
                    f"Notes are required for a failing '{c.check_type.value}' check",
                    check_type=c.check_type.value,
                )

        with self.ctx.unit_of_work("perform_compliance_checks"):
            t, prop = self._load_locked(transfer_id)
            if not TRANSFER_TRANSITIONS.allows(t.status, "record_compliance"):
                raise InvalidStateTransition("transfer", t.status, "perform_compliance_checks")

            now = self.ctx.now()
            existing = {c.check_type: c for c in t.compliance_checks}
            for c in checks:
                row = existing.get(c.check_type.value)
                if row is None:
                    row = TransferComplianceCheck(transfer_id=t.id, check_type=c.check_type.value)
                    t.compliance_checks.append(row)
                row.status = c.status.value
                row.risk_level = c.risk_level.value if c.risk_level else None
                row.notes = _clean(c.notes)
                row.checked_by_id = actor.id
                row.checked_at = now
            self.db.flush()

            verdict = self.compliance_verdict(t)
            if verdict.is_non_compliant and verdict.is_complete:
                prev, _ = self._move(t, "fail_compliance")
                t.rejection_reason = "Failed compliance checks: " + ", ".join(verdict.failed)
                t.reviewed_by_id = actor.id
                self._release_lock(prop, t)
                action = AuditAction.TRANSFER_COMPLIANCE_FAILED
                self._timeline(t, actor, "Compliance checks failed", t.rejection_reason)
                self._notify_parties(t, "transfer_rejected", reason=t.rejection_reason)
            else:
                prev, _ = self._move(t, "record_compliance")
                action = AuditAction.TRANSFER_COMPLIANCE_CHECKED
                self._timeline(t, actor, "Compliance checks recorded", f"Overall: {verdict.status.value}")

            self._audit(t, actor, action, previous_status=prev, verdict=verdict.as_dict())

        self._logged(t, actor, action, prev)
        return t

    # -------------------------
    # decision
    # -------------------------
    def approve_transfer(
        self,
        transfer_id: int,
        decision: Union[ApprovalDecision, str],
        actor: Actor,
        notes: Optional[str] = None,
    ) -> PropertyTransfer:
        actor.require(Capability.DECIDE_TRANSFER)
        try:
            decision = ApprovalDecision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision '{decision}'") from None
        notes = _clean(notes)
        if decision == ApprovalDecision.REJECTED and not notes:
            raise ValidationError("A reason is required to reject a transfer")

        with self.ctx.unit_of_work("approve_transfer"):
            t, prop = self._load_locked(transfer_id)

            if decision == ApprovalDecision.APPROVED:
                if not TRANSFER_TRANSITIONS.allows(t.status, "approve"):
                    raise InvalidStateTransition("transfer", t.status, "approve")
                verdict = self.compliance_verdict(t)
                if verdict.is_non_compliant:
                    raise ComplianceFailure(t.id, list(verdict.failed))
                if not verdict.is_compliant:
                    raise InvalidStateTransition(
                        "transfer",
                        t.status,
                        "approve",
                        message="Compliance checks are not complete: " + ", ".join(verdict.pending),
                    )
                if prop.has_active_dispute:
                    raise ActiveDisputeBlocksTransfer(property_id=prop.id)

                prev, _ = self._move(t, "approve")
                action = AuditAction.TRANSFER_APPROVED
                self._timeline(t, actor, "Transfer approved", notes)
            else:
                prev, _ = self._move(t, "reject")
                t.rejection_reason = notes
                self._release_lock(prop, t)
                action = AuditAction.TRANSFER_REJECTED
                self._timeline(t, actor, "Transfer rejected", notes)

            t.reviewed_by_id = actor.id
            if notes:
                t.review_notes = notes
            self._audit(t, actor, action, previous_status=prev, notes=notes, decision=decision.value)
            self._notify_parties(t, "transfer_" + decision.value, notes=notes)

        self._logged(t, actor, action, prev)
        return t

    def complete_transfer(self, transfer_id: int, actor: Actor) -> PropertyTransfer:
        actor.require(Capability.COMPLETE_TRANSFER)

        with self.ctx.unit_of_work("complete_transfer"):
            t, prop = self._load_locked(transfer_id)

            TRANSFER_TRANSITIONS.next_state(t.status, "complete")
            if prop.has_active_dispute:
                raise ActiveDisputeBlocksTransfer(property_id=prop.id)

            now = self.ctx.now()
            last = self.db.scalar(
                select(OwnershipRecord)
                .where(OwnershipRecord.property_id == prop.id)
                .order_by(OwnershipRecord.id.desc())
                .limit(1)
            )
            start = last.end_date if last is not None and last.end_date is not None else prop.registered_at
            self.db.add(
                OwnershipRecord(
                    property_id=prop.id,
                    owner_id=t.previous_owner_id,
                    start_date=start,
                    end_date=now,
                    transfer_type=t.transfer_type,
                    transfer_id=t.id,
                )
            )

            property_prev = prop.status
            prop.owner_id = t.new_owner_id
            self.properties.mark_transferred(prop)
            self._release_lock(prop, t)
            prop.updated_at = now

            prev, _ = self._move(t, "complete")
            t.completed_at = now
            self._timeline(t, actor, "Transfer completed", "Ownership transferred")
            self._audit(
                t,
                actor,
                AuditAction.TRANSFER_COMPLETED,
                previous_status=prev,
                new_owner_id=t.new_owner_id,
                property_status=prop.status,
                property_previous_status=property_prev,
            )
            self._notify_parties(t, "transfer_completed")

        self._logged(t, actor, AuditAction.TRANSFER_COMPLETED, prev)
        return t

    def cancel_transfer(self, transfer_id: int, actor: Actor, reason: Optional[str] = None) -> PropertyTransfer:
        reason = _clean(reason)
        if reason and len(reason) > MAX_CANCEL_REASON_LEN:
            raise ValidationError(f"Cancellation reason must be at most {MAX_CANCEL_REASON_LEN} characters")

        with self.ctx.unit_of_work("cancel_transfer"):
            t, prop = self._load_locked(transfer_id)
            self._require_previous_owner(t, actor, "Only the initiating owner can cancel this transfer")

            prev, _ = self._move(t, "cancel")
            self._release_lock(prop, t)
            self._timeline(t, actor, "Transfer cancelled", reason)
            self._audit(t, actor, AuditAction.TRANSFER_CANCELLED, previous_status=prev, notes=reason)
            self.ctx.notify_after_commit(
                t.new_owner_id, "transfer_cancelled", {"transfer_id": t.id, "property_id": t.property_id}
            )

        self._logged(t, actor, AuditAction.TRANSFER_CANCELLED, prev)
        return t

    # -------------------------
    # reads
    # -------------------------
    def get_transfer(self, transfer_id: int, actor: Actor) -> PropertyTransfer:
        t = must_get_transfer(self.db, transfer_id=transfer_id)
        if actor.id in (t.previous_owner_id, t.new_owner_id) or actor.can(Capability.VIEW_ANY_RECORD):
            return t
        # parties and staff only; others cannot tell it exists
        raise NotFoundError("transfer", transfer_id, message="Transfer not found")

    def list_transfers_for_user(
        self,
        actor: Actor,
        *,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[PropertyTransfer], int]:
        q = select(PropertyTransfer).where(
            (PropertyTransfer.previous_owner_id == actor.id) | (PropertyTransfer.new_owner_id == actor.id)
        )
        if status:
            q = q.where(PropertyTransfer.status == TRANSFER_TRANSITIONS.coerce(status).value)
        return paginate(self.db, q.order_by(PropertyTransfer.initiated_at.desc(), PropertyTransfer.id.desc()),
                        page=page, limit=limit)

    def list_transfers(
        self,
        actor: Actor,
        *,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[PropertyTransfer], int]:
        actor.require(Capability.LIST_ALL_TRANSFERS)
        q = select(PropertyTransfer)
        if status:
            q = q.where(PropertyTransfer.status == TRANSFER_TRANSITIONS.coerce(status).value)
        return paginate(self.db, q.order_by(PropertyTransfer.initiated_at.desc(), PropertyTransfer.id.desc()),
                        page=page, limit=limit)

    def property_transfer_history(self, property_id: int, actor: Actor) -> list[PropertyTransfer]:
        prop = must_get_property(self.db, property_id=property_id)
        self.properties.ensure_can_view(prop, actor)
        q = (
            select(PropertyTransfer)
            .where(PropertyTransfer.property_id == prop.id)
            .order_by(PropertyTransfer.initiated_at.desc(), PropertyTransfer.id.desc())
        )
        return list(self.db.scalars(q).all())
