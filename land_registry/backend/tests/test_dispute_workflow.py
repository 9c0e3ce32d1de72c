# backend/tests/test_dispute_workflow.py
from __future__ import annotations

import pytest

from app.domain import audit
from app.domain.compliance_checks import SubCheck
from app.domain.errors import (
    ActiveDisputeBlocksTransfer,
    DisputeAlreadyActive,
    ForbiddenError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from app.services.dispute_workflow import DisputeCoordinator, EvidenceUpload
from app.services.transfer_workflow import DocumentReview, DocumentUpload, TransferCoordinator


def _evidence(name="Title deed copy"):
    return EvidenceUpload(
        document_type="legal_document",
        document_name=name,
        file_id="ev-1",
        filename="deed.pdf",
        file_type="application/pdf",
    )


def _file(coord, prop, who, **kw):
    return coord.submit_dispute(
        prop.id,
        who,
        kw.pop("dispute_type", "ownership_dispute"),
        kw.pop("title", "This parcel is mine"),
        kw.pop("description", "Inherited from my father in 2009"),
        **kw,
    )


def _transfer_to_verification(ctx, prop, owner, officer):
    transfers = TransferCoordinator(ctx)
    t = transfers.initiate_transfer(prop.id, "buyer@t.local", "sale", "Sold", owner)
    t = transfers.upload_transfer_documents(
        t.id,
        [DocumentUpload("sale_agreement", "Agreement", "f-1", "a.pdf", "application/pdf")],
        owner,
    )
    t = transfers.review_transfer_documents(
        t.id, [DocumentReview(d.id, "approved", "ok") for d in t.documents], officer
    )
    transfers.perform_compliance_checks(
        t.id,
        [
            SubCheck.of("ethiopian_law", "compliant"),
            SubCheck.of("tax_clearance", "compliant"),
            SubCheck.of("fraud_prevention", "compliant", "low"),
        ],
        officer,
    )
    return transfers, t


def test_submit_sets_flag_and_notifies_owner(ctx, make_property, owner, stranger, notifier):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)

    d = _file(coord, prop, stranger, evidence=[_evidence()])

    assert d.status == "submitted"
    assert d.disputant_id == stranger.id
    assert len(d.evidence) == 1
    assert [e.action for e in d.timeline] == ["Dispute submitted"]
    ctx.db.refresh(prop)
    assert prop.has_active_dispute is True
    assert notifier.events_for(owner.id) == ["dispute_submitted"]

    latest = audit.logs_for_property(ctx.db, property_id=prop.id)[0]
    assert latest.action == "dispute_submitted"
    assert latest.user_id == stranger.id


def test_owner_filing_on_own_parcel_is_not_notified(ctx, make_property, owner, notifier):
    prop = make_property(owner)
    _file(DisputeCoordinator(ctx), prop, owner, dispute_type="documentation_error", title="Wrong area")
    assert notifier.events_for(owner.id) == []


def test_second_active_dispute_rejected(ctx, make_property, owner, stranger, buyer):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    first = _file(coord, prop, stranger)

    with pytest.raises(DisputeAlreadyActive) as ei:
        _file(coord, prop, buyer, dispute_type="boundary_dispute")
    assert ei.value.active_id == first.id
    assert coord.active_dispute_count(prop.id) == 1


def test_submit_validation(ctx, make_property, owner, stranger):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    with pytest.raises(ValidationError):
        _file(coord, prop, stranger, title="  ")
    with pytest.raises(ValidationError):
        _file(coord, prop, stranger, description="x" * 2001)
    with pytest.raises(ValidationError):
        _file(coord, prop, stranger, dispute_type="noise_complaint")
    with pytest.raises(NotFoundError):
        coord.submit_dispute(9999, stranger, "other", "t", "d")


def test_dispute_during_review_blocks_approval_and_completion(ctx, make_property, owner, buyer, stranger, officer, admin):
    prop = make_property(owner)
    transfers, t = _transfer_to_verification(ctx, prop, owner, officer)
    disputes = DisputeCoordinator(ctx)

    d = _file(disputes, prop, stranger)
    with pytest.raises(ActiveDisputeBlocksTransfer):
        transfers.approve_transfer(t.id, "approved", officer)

    ctx.db.expire_all()
    assert transfers.get_transfer(t.id, officer).status == "verification_pending"

    # resolve, approve, then a fresh dispute lands before completion
    disputes.begin_review(d.id, officer)
    disputes.resolve_dispute(d.id, "in_favor_of_owner", "claim unsupported", officer)
    transfers.approve_transfer(t.id, "approved", officer)

    _file(disputes, prop, buyer, dispute_type="boundary_dispute", title="Fence moved")
    with pytest.raises(ActiveDisputeBlocksTransfer):
        transfers.complete_transfer(t.id, admin)

    ctx.db.refresh(prop)
    assert prop.owner_id == owner.id
    assert prop.current_transfer_id == t.id


def test_active_dispute_blocks_new_transfer(ctx, make_property, owner, buyer, stranger):
    prop = make_property(owner)
    _file(DisputeCoordinator(ctx), prop, stranger)
    with pytest.raises(ActiveDisputeBlocksTransfer):
        TransferCoordinator(ctx).initiate_transfer(prop.id, "buyer@t.local", "sale", "Sold", owner)


def test_only_disputant_can_withdraw(ctx, make_property, owner, stranger):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)

    with pytest.raises(ForbiddenError):
        coord.withdraw_dispute(d.id, owner, "I disagree")

    ctx.db.expire_all()
    assert coord.get_dispute(d.id, stranger).status == "submitted"
    ctx.db.refresh(prop)
    assert prop.has_active_dispute is True


def test_withdraw_clears_flag(ctx, make_property, owner, stranger):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)

    d = coord.withdraw_dispute(d.id, stranger, "settled privately")
    assert d.status == "withdrawn"
    ctx.db.refresh(prop)
    assert prop.has_active_dispute is False
    assert audit.logs_for_property(ctx.db, property_id=prop.id)[0].action == "dispute_withdrawn"

    with pytest.raises(InvalidStateTransition):
        coord.withdraw_dispute(d.id, stranger)


def test_cannot_withdraw_during_mediation(ctx, make_property, owner, stranger, officer, admin):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)
    coord.begin_review(d.id, officer)
    coord.assign_dispute(d.id, officer.id, admin)
    coord.schedule_mediation(d.id, officer, "Meeting at the kebele office")

    with pytest.raises(InvalidStateTransition):
        coord.withdraw_dispute(d.id, stranger)


def test_evidence_added_by_disputant_only(ctx, make_property, owner, stranger):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)

    d = coord.add_evidence(d.id, [_evidence("Witness letter"), _evidence("Photo")], stranger)
    assert len(d.evidence) == 2
    assert d.status == "submitted"

    with pytest.raises(ForbiddenError):
        coord.add_evidence(d.id, [_evidence()], owner)
    with pytest.raises(ValidationError):
        coord.add_evidence(d.id, [], stranger)


def test_assignment_requires_admin_and_land_officer(ctx, make_property, owner, stranger, officer, admin):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)
    coord.begin_review(d.id, officer)

    with pytest.raises(ForbiddenError):
        coord.assign_dispute(d.id, officer.id, officer)
    with pytest.raises(ValidationError):
        coord.assign_dispute(d.id, stranger.id, admin)

    d = coord.assign_dispute(d.id, officer.id, admin)
    assert d.status == "investigation"
    assert d.assigned_to_id == officer.id


def test_full_dispute_lifecycle_resolves_and_clears_flag(ctx, make_property, owner, stranger, officer, admin, notifier):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)

    with pytest.raises(InvalidStateTransition):
        coord.resolve_dispute(d.id, "settled", "too early", officer)

    coord.begin_review(d.id, officer, "Looking into it")
    coord.assign_dispute(d.id, officer.id, admin)
    coord.schedule_mediation(d.id, officer)

    with pytest.raises(ValidationError):
        coord.resolve_dispute(d.id, "settled", " ", officer)

    d = coord.resolve_dispute(d.id, "settled", "Parties agreed", officer, action_required="Redraw boundary")
    assert d.status == "resolved"
    assert d.resolution_outcome == "settled"
    assert d.resolution_action_required == "Redraw boundary"
    assert d.resolved_by_id == officer.id
    ctx.db.refresh(prop)
    assert prop.has_active_dispute is False
    assert "dispute_resolved" in notifier.events_for(stranger.id)
    assert "dispute_resolved" in notifier.events_for(owner.id)

    assert [e.action for e in d.timeline] == [
        "Dispute submitted",
        "Review started",
        "Assigned for investigation",
        "Mediation scheduled",
        "Dispute resolved",
    ]

    # the parcel can be disputed again once the previous one is closed
    again = _file(coord, prop, stranger, title="New claim")
    assert again.status == "submitted"


def test_plain_user_cannot_manage(ctx, make_property, owner, stranger):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)
    with pytest.raises(ForbiddenError):
        coord.begin_review(d.id, owner)
    with pytest.raises(ForbiddenError):
        coord.list_disputes(owner)


def test_reads(ctx, make_property, owner, stranger, officer):
    prop = make_property(owner)
    coord = DisputeCoordinator(ctx)
    d = _file(coord, prop, stranger)

    assert coord.get_dispute(d.id, officer).id == d.id
    with pytest.raises(NotFoundError):
        coord.get_dispute(d.id, owner)

    rows, total = coord.list_disputes_for_user(stranger)
    assert total == 1 and rows[0].id == d.id
    rows, total = coord.list_disputes(officer, property_id=prop.id, status="submitted")
    assert total == 1
    rows, total = coord.list_disputes(officer, status="resolved")
    assert total == 0
