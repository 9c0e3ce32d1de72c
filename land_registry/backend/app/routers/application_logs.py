# backend/app/routers/application_logs.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_actor
from ..domain import audit
from ..domain.actor import Actor, Capability
from ..domain.enums import AuditAction
from ..schemas import ApplicationLogOut, ApplicationLogPage
from ..services.property_state_machine import PropertyStateMachine
from ..services.workflow_context import WorkflowContext, get_workflow_context
from .pagination import Paging, paging

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("/property/{property_id}", response_model=list[ApplicationLogOut])
def property_logs(
    property_id: int,
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    machine = PropertyStateMachine(ctx)
    prop = machine.get_property(property_id)
    machine.ensure_can_view(prop, actor)
    return audit.logs_for_property(ctx.db, property_id=prop.id)


@router.get("/user", response_model=list[ApplicationLogOut])
def my_logs(
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    return audit.logs_for_user(ctx.db, user_id=actor.id)


@router.get("", response_model=ApplicationLogPage)
def list_logs(
    action: Optional[AuditAction] = Query(default=None),
    status: Optional[str] = Query(default=None),
    property_id: Optional[int] = Query(default=None),
    user_id: Optional[int] = Query(default=None),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    pg: Paging = Depends(paging),
    ctx: WorkflowContext = Depends(get_workflow_context),
    actor: Actor = Depends(get_actor),
):
    actor.require(Capability.VIEW_ALL_LOGS)
    filters = audit.LogFilter(
        action=action.value if action else None,
        status=status,
        user_id=user_id,
        property_id=property_id,
        start=start,
        end=end,
    )
    rows, total = audit.list_logs(ctx.db, filters=filters, page=pg.page, limit=pg.limit)
    return ApplicationLogPage(items=rows, total=total, page=pg.page, limit=pg.limit)
