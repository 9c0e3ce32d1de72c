# backend/app/services/notifications.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from ..config import Settings

log = logging.getLogger("landreg.notifications")


@dataclass(frozen=True)
class Notification:
    user_id: int
    event: str
    payload: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    def notify(self, user_id: int, event: str, payload: dict[str, Any]) -> None: ...


class LogNotifier:
    """Default notifier: one log line per notification."""

    def notify(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        log.info("notification %s -> user %s", event, user_id, extra={"user_id": user_id, "action": event})


class WebhookNotifier:
    """
    Posts notifications to an external notification service.
    Delivery is best-effort; the caller never sees transport errors.
    """

    def __init__(self, url: str, *, timeout: float = 5.0, client: Optional[httpx.Client] = None) -> None:
        self.url = url
        self.timeout = float(timeout)
        self._client = client

    def notify(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        body = {"user_id": int(user_id), "event": str(event), "payload": payload}
        if self._client is not None:
            r = self._client.post(self.url, json=body)
            r.raise_for_status()
            return
        with httpx.Client(timeout=self.timeout) as client:
            r = client.post(self.url, json=body)
            r.raise_for_status()


def build_notifier(settings: Settings) -> Notifier:
    if settings.notification_webhook_url:
        return WebhookNotifier(settings.notification_webhook_url, timeout=settings.notification_timeout_seconds)
    return LogNotifier()


def dispatch(notifier: Notifier, notifications: list[Notification]) -> int:
    """
    Fire-and-forget delivery after commit. Failures are logged and counted,
    never raised: a committed workflow step must not look failed because a
    notification did not go out.
    """
    failed = 0
    for n in notifications:
        try:
            notifier.notify(n.user_id, n.event, dict(n.payload))
        except Exception:
            failed += 1
            log.warning(
                "notification delivery failed: %s -> user %s",
                n.event,
                n.user_id,
                exc_info=True,
                extra={"user_id": n.user_id, "action": n.event},
            )
    return failed
