# backend/app/routers/transfers.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_actor
from ..domain.actor import Actor
from ..domain.enums import TransferStatus
from ..models import PropertyTransfer
from ..schemas import (
    ApprovalRequest,
    CancelRequest,
    ComplianceRequest,
    DocumentReviewRequest,
    TransferCreate,
    TransferDocumentsUpload,
    TransferOut,
    TransferPage,
)
from ..services.transfer_workflow import DocumentReview, DocumentUpload, TransferCoordinator
from ..services.workflow_context import WorkflowContext, get_workflow_context
from .pagination import Paging, paging

router = APIRouter(prefix="/transfers", tags=["transfers"])


def _out(coord: TransferCoordinator, t: PropertyTransfer) -> TransferOut:
    out = TransferOut.model_validate(t)
    out.compliance_status = coord.compliance_verdict(t).status.value
    return out


@router.post("", response_model=TransferOut, status_code=201)
def initiate_transfer(
    payload: TransferCreate,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    t = coord.initiate_transfer(
        payload.property_id,
        payload.new_owner_email,
        payload.transfer_type,
        payload.transfer_reason,
        actor,
        value_amount=payload.transfer_value.amount,
        currency=payload.transfer_value.currency,
    )
    return _out(coord, t)


@router.get("/my-transfers", response_model=TransferPage)
def my_transfers(
    status: Optional[TransferStatus] = Query(default=None),
    pg: Paging = Depends(paging),
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    rows, total = coord.list_transfers_for_user(
        actor, status=status.value if status else None, page=pg.page, limit=pg.limit
    )
    return TransferPage(items=[_out(coord, t) for t in rows], total=total, page=pg.page, limit=pg.limit)


@router.get("", response_model=TransferPage)
def list_transfers(
    status: Optional[TransferStatus] = Query(default=None),
    pg: Paging = Depends(paging),
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    rows, total = coord.list_transfers(actor, status=status.value if status else None, page=pg.page, limit=pg.limit)
    return TransferPage(items=[_out(coord, t) for t in rows], total=total, page=pg.page, limit=pg.limit)


@router.get("/{transfer_id}", response_model=TransferOut)
def get_transfer(
    transfer_id: int,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    return _out(coord, coord.get_transfer(transfer_id, actor))


@router.post("/{transfer_id}/documents", response_model=TransferOut)
def upload_documents(
    transfer_id: int,
    payload: TransferDocumentsUpload,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    docs = [DocumentUpload(**d.model_dump()) for d in payload.documents]
    return _out(coord, coord.upload_transfer_documents(transfer_id, docs, actor, submit=payload.submit))


@router.put("/{transfer_id}/submit", response_model=TransferOut)
def submit_documents(
    transfer_id: int,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    return _out(coord, coord.submit_transfer_documents(transfer_id, actor))


@router.put("/{transfer_id}/review-documents", response_model=TransferOut)
def review_documents(
    transfer_id: int,
    payload: DocumentReviewRequest,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    reviews = [DocumentReview(document_id=r.document_id, status=r.status, notes=r.notes) for r in payload.reviews]
    return _out(coord, coord.review_transfer_documents(transfer_id, reviews, actor))


@router.put("/{transfer_id}/compliance", response_model=TransferOut)
def compliance_checks(
    transfer_id: int,
    payload: ComplianceRequest,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    return _out(coord, coord.perform_compliance_checks(transfer_id, payload.to_subchecks(), actor))


@router.put("/{transfer_id}/approve", response_model=TransferOut)
def approve_transfer(
    transfer_id: int,
    payload: ApprovalRequest,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    return _out(coord, coord.approve_transfer(transfer_id, payload.decision, actor, payload.notes))


@router.put("/{transfer_id}/complete", response_model=TransferOut)
def complete_transfer(
    transfer_id: int,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    return _out(coord, coord.complete_transfer(transfer_id, actor))


@router.put("/{transfer_id}/cancel", response_model=TransferOut)
def cancel_transfer(
    transfer_id: int,
    payload: Optional[CancelRequest] = None,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    coord = TransferCoordinator(ctx)
    reason = payload.reason if payload else None
    return _out(coord, coord.cancel_transfer(transfer_id, actor, reason))
