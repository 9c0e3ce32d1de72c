# backend/app/services/workflow_context.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterator, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..db import get_db
from ..domain.errors import AuditImmutableError, WorkflowError
from ..models import utcnow
from .notifications import LogNotifier, Notification, Notifier, dispatch

log = logging.getLogger("landreg.workflow")


@dataclass
class WorkflowContext:
    """
    Everything a coordinator needs, passed in explicitly:
      - db: the request's session (one transaction per operation)
      - notifier: post-commit notification sink
      - clock: injectable for tests
    """

    db: Session
    notifier: Notifier = field(default_factory=LogNotifier)
    clock: Callable[[], datetime] = utcnow

    _pending: list[Notification] = field(default_factory=list, init=False, repr=False)
    _depth: int = field(default=0, init=False, repr=False)

    def now(self) -> datetime:
        return self.clock()

    def notify_after_commit(self, user_id: Optional[int], event: str, payload: Optional[dict[str, Any]] = None) -> None:
        if user_id is None:
            return
        self._pending.append(Notification(user_id=int(user_id), event=event, payload=dict(payload or {})))

    @contextmanager
    def unit_of_work(self, operation: str) -> Iterator[Session]:
        """
        One logical unit of work: all writes (both aggregates + audit) commit
        together or roll back together. Nested calls join the outer unit.
        """
        if self._depth > 0:
            self._depth += 1
            try:
                yield self.db
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self.db
            self.db.commit()
        except AuditImmutableError as e:
            self.db.rollback()
            self._pending.clear()
            log.error("%s blocked: %s", operation, e, extra={"action": operation})
            raise
        except WorkflowError as e:
            self.db.rollback()
            self._pending.clear()
            log.info("%s rejected: %s", operation, e.code, extra={"action": operation})
            raise
        except Exception:
            self.db.rollback()
            self._pending.clear()
            log.exception("%s failed", operation, extra={"action": operation})
            raise
        finally:
            self._depth = 0

        pending, self._pending = self._pending, []
        if pending:
            dispatch(self.notifier, pending)


def get_workflow_context(request: Request, db: Session = Depends(get_db)) -> WorkflowContext:
    """FastAPI dependency: one context per request, sharing the request's session."""
    return WorkflowContext(db=db, notifier=request.app.state.notifier)
