# backend/app/services/auth_service.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt  # PyJWT

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.domain.enums import Role
from app.models import AppUser


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _jwt_secret(cfg: Settings) -> str:
    secret = (cfg.jwt_secret or "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET is required for auth_mode=jwt")
    return secret


def create_access_token(*, user_id: int, role: str, cfg: Optional[Settings] = None) -> str:
    cfg = cfg or default_settings
    now = _now()
    payload: dict[str, Any] = {
        "sub": str(int(user_id)),
        "role": str(role),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=int(cfg.jwt_exp_minutes))).timestamp()),
    }
    return jwt.encode(payload, _jwt_secret(cfg), algorithm=cfg.jwt_algorithm)


def decode_access_token(token: str, cfg: Optional[Settings] = None) -> dict[str, Any]:
    """Raises jwt.PyJWTError (expired, bad signature, malformed)."""
    cfg = cfg or default_settings
    return jwt.decode(token, _jwt_secret(cfg), algorithms=[cfg.jwt_algorithm])


def get_or_create_user(db: Session, email: str, role: str = Role.USER.value) -> AppUser:
    email = email.strip().lower()
    u = db.scalar(select(AppUser).where(AppUser.email == email))
    if u:
        return u
    u = AppUser(email=email, full_name=email.split("@")[0], role=Role(role).value)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u
