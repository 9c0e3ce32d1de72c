# backend/app/routers/disputes.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_actor
from ..domain.actor import Actor
from ..domain.enums import DisputeStatus
from ..schemas import (
    DisputeAssign,
    DisputeCreate,
    DisputeEvidenceAdd,
    DisputeOut,
    DisputePage,
    DisputeResolve,
    DisputeWithdraw,
    OfficerNotes,
)
from ..services.dispute_workflow import DisputeCoordinator, EvidenceUpload
from ..services.workflow_context import WorkflowContext, get_workflow_context
from .pagination import Paging, paging

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post("", response_model=DisputeOut, status_code=201)
def submit_dispute(
    payload: DisputeCreate,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return DisputeCoordinator(ctx).submit_dispute(
        payload.property_id,
        actor,
        payload.dispute_type,
        payload.title,
        payload.description,
        [EvidenceUpload(**e.model_dump()) for e in payload.evidence],
    )


@router.get("/my-disputes", response_model=DisputePage)
def my_disputes(
    status: Optional[DisputeStatus] = Query(default=None),
    pg: Paging = Depends(paging),
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    rows, total = DisputeCoordinator(ctx).list_disputes_for_user(
        actor, status=status.value if status else None, page=pg.page, limit=pg.limit
    )
    return DisputePage(items=rows, total=total, page=pg.page, limit=pg.limit)


@router.get("/admin/all", response_model=DisputePage)
def list_disputes(
    status: Optional[DisputeStatus] = Query(default=None),
    property_id: Optional[int] = Query(default=None),
    pg: Paging = Depends(paging),
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    rows, total = DisputeCoordinator(ctx).list_disputes(
        actor,
        status=status.value if status else None,
        property_id=property_id,
        page=pg.page,
        limit=pg.limit,
    )
    return DisputePage(items=rows, total=total, page=pg.page, limit=pg.limit)


@router.get("/{dispute_id}", response_model=DisputeOut)
def get_dispute(
    dispute_id: int,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return DisputeCoordinator(ctx).get_dispute(dispute_id, actor)


@router.put("/{dispute_id}/withdraw", response_model=DisputeOut)
def withdraw_dispute(
    dispute_id: int,
    payload: Optional[DisputeWithdraw] = None,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    reason = payload.reason if payload else None
    return DisputeCoordinator(ctx).withdraw_dispute(dispute_id, actor, reason)


@router.post("/{dispute_id}/evidence", response_model=DisputeOut)
def add_evidence(
    dispute_id: int,
    payload: DisputeEvidenceAdd,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    evidence = [EvidenceUpload(**e.model_dump()) for e in payload.evidence]
    return DisputeCoordinator(ctx).add_evidence(dispute_id, evidence, actor)


# -------------------- officer / admin --------------------

@router.put("/admin/{dispute_id}/review", response_model=DisputeOut)
def begin_review(
    dispute_id: int,
    payload: Optional[OfficerNotes] = None,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return DisputeCoordinator(ctx).begin_review(dispute_id, actor, payload.notes if payload else None)


@router.put("/admin/{dispute_id}/assign", response_model=DisputeOut)
def assign_dispute(
    dispute_id: int,
    payload: DisputeAssign,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return DisputeCoordinator(ctx).assign_dispute(dispute_id, payload.assignee_id, actor, payload.notes)


@router.put("/admin/{dispute_id}/mediation", response_model=DisputeOut)
def schedule_mediation(
    dispute_id: int,
    payload: Optional[OfficerNotes] = None,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return DisputeCoordinator(ctx).schedule_mediation(dispute_id, actor, payload.notes if payload else None)


@router.put("/admin/{dispute_id}/resolve", response_model=DisputeOut)
def resolve_dispute(
    dispute_id: int,
    payload: DisputeResolve,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return DisputeCoordinator(ctx).resolve_dispute(
        dispute_id, payload.outcome, payload.notes, actor, payload.action_required
    )
