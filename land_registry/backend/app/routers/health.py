# backend/app/routers/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..schemas import HealthOut

router = APIRouter(tags=["health"])
log = logging.getLogger("landreg.health")


@router.get("/health", response_model=HealthOut)
def health(request: Request):
    cfg = request.app.state.settings
    db_ok = True
    try:
        with request.app.state.database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        log.warning("health check: database unreachable", exc_info=True)
        db_ok = False
    return HealthOut(ok=db_ok, env=cfg.app_env, version=cfg.app_version, db=db_ok)
