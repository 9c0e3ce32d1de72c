# backend/app/routers/properties.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_actor
from ..domain.actor import Actor
from ..domain.enums import PropertyStatus
from ..schemas import PropertyCreate, PropertyOut, PropertyPage, PropertyStatusUpdate, TransferOut
from ..services.property_state_machine import PropertyStateMachine
from ..services.transfer_workflow import TransferCoordinator
from ..services.workflow_context import WorkflowContext, get_workflow_context
from .pagination import Paging, paging

router = APIRouter(prefix="/properties", tags=["properties"])


@router.post("", response_model=PropertyOut, status_code=201)
def register_property(
    payload: PropertyCreate,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return PropertyStateMachine(ctx).register_property(actor, **payload.model_dump())


@router.get("/my-properties", response_model=PropertyPage)
def my_properties(
    status: Optional[PropertyStatus] = Query(default=None),
    pg: Paging = Depends(paging),
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    rows, total = PropertyStateMachine(ctx).list_properties_for_owner(
        actor, status=status.value if status else None, page=pg.page, limit=pg.limit
    )
    return PropertyPage(items=rows, total=total, page=pg.page, limit=pg.limit)


@router.get("", response_model=PropertyPage)
def list_properties(
    status: Optional[PropertyStatus] = Query(default=None),
    pg: Paging = Depends(paging),
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    rows, total = PropertyStateMachine(ctx).list_properties(
        actor, status=status.value if status else None, page=pg.page, limit=pg.limit
    )
    return PropertyPage(items=rows, total=total, page=pg.page, limit=pg.limit)


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(
    property_id: int,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return PropertyStateMachine(ctx).get_property(property_id)


@router.put("/{property_id}/status", response_model=PropertyOut)
def update_property_status(
    property_id: int,
    payload: PropertyStatusUpdate,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return PropertyStateMachine(ctx).request_transition(property_id, payload.status, actor, payload.notes)


@router.get("/{property_id}/transfers", response_model=list[TransferOut])
def property_transfer_history(
    property_id: int,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return TransferCoordinator(ctx).property_transfer_history(property_id, actor)
