# backend/app/routers/pagination.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Query, Request


@dataclass(frozen=True)
class Paging:
    page: int
    limit: int


def paging(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
) -> Paging:
    cfg = request.app.state.settings
    size = int(limit or cfg.default_page_size)
    return Paging(page=int(page), limit=min(size, int(cfg.max_page_size)))
