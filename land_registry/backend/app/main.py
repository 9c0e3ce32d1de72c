# backend/app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, settings as default_settings
from .db import Database
from .domain.errors import WorkflowError
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware
from .routers.application_logs import router as logs_router
from .routers.disputes import router as disputes_router
from .routers.health import router as health_router
from .routers.properties import router as properties_router
from .routers.transfers import router as transfers_router
from .services.notifications import build_notifier

API_PREFIX = "/api"

log = logging.getLogger("landreg.app")


def _cors_origins(cfg: Settings) -> list[str]:
    val = cfg.cors_allow_origins
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


def create_app(
    cfg: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    setup_logging: bool = True,
) -> FastAPI:
    """
    Build the API. Tests pass their own Settings and/or an already-created
    Database; otherwise one is created from settings on startup and disposed
    on shutdown.
    """
    cfg = cfg or default_settings
    if setup_logging:
        configure_logging(cfg.log_level, cfg.sql_log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = database is None
        db = database or Database(cfg.database_url, echo=cfg.database_echo)
        if cfg.auto_create_schema:
            db.create_all()
        app.state.database = db
        log.info("startup env=%s version=%s", cfg.app_env, cfg.app_version)
        try:
            yield
        finally:
            if owned:
                db.dispose()

    app = FastAPI(title="Land Registry Workflow API", version=cfg.app_version, lifespan=lifespan)
    app.state.settings = cfg
    app.state.notifier = build_notifier(cfg)
    if database is not None:
        app.state.database = database

    # last added runs first: RequestID must wrap StructuredLogging
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(cfg),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(WorkflowError, workflow_error_handler)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(properties_router, prefix=API_PREFIX)
    app.include_router(transfers_router, prefix=API_PREFIX)
    app.include_router(disputes_router, prefix=API_PREFIX)
    app.include_router(logs_router, prefix=API_PREFIX)

    return app
