# backend/tests/test_notifications.py
from __future__ import annotations

import json

import httpx
import pytest

from app.config import Settings
from app.domain.errors import NotOwnerError
from app.services.notifications import (
    LogNotifier,
    Notification,
    WebhookNotifier,
    build_notifier,
    dispatch,
)
from app.services.transfer_workflow import TransferCoordinator
from app.services.workflow_context import WorkflowContext


class _Exploding:
    def __init__(self):
        self.calls = 0

    def notify(self, user_id, event, payload):
        self.calls += 1
        raise RuntimeError("smtp down")


def test_dispatch_counts_failures_without_raising():
    n = _Exploding()
    failed = dispatch(n, [Notification(1, "a"), Notification(2, "b")])
    assert failed == 2
    assert n.calls == 2


def test_delivery_failure_does_not_undo_commit(db, make_property, owner, buyer):
    ctx = WorkflowContext(db=db, notifier=_Exploding())
    prop = make_property(owner)
    t = TransferCoordinator(ctx).initiate_transfer(prop.id, "buyer@t.local", "sale", "Sold", owner)

    db.expire_all()
    assert db.get(type(t), t.id).status == "initiated"


def test_rejected_operation_sends_nothing(ctx, notifier, make_property, owner, buyer, stranger):
    prop = make_property(owner)
    notifier.sent.clear()

    with pytest.raises(NotOwnerError):
        TransferCoordinator(ctx).initiate_transfer(prop.id, "buyer@t.local", "sale", "Sold", stranger)
    assert notifier.sent == []


def test_nested_unit_of_work_dispatches_once_after_outer_commit(ctx, notifier):
    with ctx.unit_of_work("outer"):
        ctx.notify_after_commit(7, "outer_event")
        with ctx.unit_of_work("inner"):
            ctx.notify_after_commit(7, "inner_event")
        assert notifier.sent == []
    assert notifier.events_for(7) == ["outer_event", "inner_event"]


def test_notify_without_recipient_is_dropped(ctx, notifier):
    with ctx.unit_of_work("noop"):
        ctx.notify_after_commit(None, "ghost")
    assert notifier.sent == []


def test_webhook_notifier_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    WebhookNotifier("http://notify.local/hook", client=client).notify(3, "transfer_approved", {"transfer_id": 9})

    assert seen == [{"user_id": 3, "event": "transfer_approved", "payload": {"transfer_id": 9}}]


def test_webhook_error_status_is_counted_by_dispatch():
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    notifier = WebhookNotifier("http://notify.local/hook", client=client)
    assert dispatch(notifier, [Notification(1, "x")]) == 1


def test_build_notifier_picks_webhook_when_configured():
    assert isinstance(build_notifier(Settings(app_env="test")), LogNotifier)
    hook = build_notifier(Settings(app_env="test", notification_webhook_url="http://notify.local/hook"))
    assert isinstance(hook, WebhookNotifier)
    assert hook.url == "http://notify.local/hook"
