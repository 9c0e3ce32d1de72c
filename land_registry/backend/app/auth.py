# backend/app/auth.py
from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import Settings
from .db import get_db
from .domain.actor import Actor
from .domain.enums import Role
from .models import AppUser
from .services.auth_service import decode_access_token, get_or_create_user


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _actor_from_token(db: Session, token: str, cfg: Settings) -> Actor:
    try:
        claims = decode_access_token(token, cfg)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    sub = str(claims.get("sub") or "")
    if not sub.isdigit():
        raise HTTPException(status_code=401, detail="Token missing sub")

    user = db.get(AppUser, int(sub))
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    # the stored role wins over whatever the token claims
    return Actor.of(user.id, user.role)


def _actor_from_dev_headers(db: Session, request: Request, cfg: Settings) -> Actor:
    email = (request.headers.get(cfg.dev_header_user_email) or "").strip().lower()
    role_hint = (request.headers.get(cfg.dev_header_user_role) or Role.USER.value).strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail=f"Missing {cfg.dev_header_user_email} for dev auth")
    if role_hint not in {r.value for r in Role}:
        raise HTTPException(status_code=401, detail=f"Unknown role '{role_hint}'")

    user = db.scalar(select(AppUser).where(AppUser.email == email))
    if user is None:
        if not cfg.dev_auto_provision:
            raise HTTPException(status_code=401, detail="Unknown user")
        user = get_or_create_user(db, email=email, role=role_hint)
    elif user.role != role_hint:
        # dev convenience: the header decides the role for this account
        user.role = role_hint
        db.commit()

    return Actor.of(user.id, user.role)


def get_actor(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Actor:
    """
    Auth modes (in priority order):
      1) Authorization: Bearer <jwt>  (sub = user id)
      2) dev header spoofing, only when settings.auth_mode == "dev"
    """
    cfg = get_settings(request)

    token = None
    if authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()
    if token:
        return _actor_from_token(db, token, cfg)

    if (cfg.auth_mode or "").strip().lower() == "dev":
        return _actor_from_dev_headers(db, request, cfg)

    raise HTTPException(status_code=401, detail="Not authenticated")
