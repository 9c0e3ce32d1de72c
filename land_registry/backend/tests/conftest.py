# backend/tests/conftest.py
from __future__ import annotations

from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.db import Database
from app.domain.actor import Actor
from app.domain.enums import PropertyStatus, PropertyType, Role
from app.main import create_app
from app.models import AppUser, Property
from app.services.property_state_machine import PropertyStateMachine
from app.services.workflow_context import WorkflowContext


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, dict[str, Any]]] = []

    def notify(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        self.sent.append((user_id, event, payload))

    def events_for(self, user_id: int) -> list[str]:
        return [e for (u, e, _) in self.sent if u == user_id]


@pytest.fixture()
def database():
    database = Database("sqlite://")
    database.create_all()
    try:
        yield database
    finally:
        database.dispose()


@pytest.fixture()
def db(database):
    with database.session() as s:
        yield s


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def ctx(db, notifier):
    return WorkflowContext(db=db, notifier=notifier)


@pytest.fixture()
def make_actor(db) -> Callable[..., Actor]:
    def _mk(email: str, role: Role = Role.USER) -> Actor:
        u = AppUser(email=email, full_name=email.split("@")[0], role=role.value)
        db.add(u)
        db.commit()
        db.refresh(u)
        return Actor.of(u.id, u.role)

    return _mk


@pytest.fixture()
def owner(make_actor):
    return make_actor("owner@t.local")


@pytest.fixture()
def buyer(make_actor):
    return make_actor("buyer@t.local")


@pytest.fixture()
def stranger(make_actor):
    return make_actor("stranger@t.local")


@pytest.fixture()
def officer(make_actor):
    return make_actor("officer@t.local", Role.LAND_OFFICER)


@pytest.fixture()
def admin(make_actor):
    return make_actor("admin@t.local", Role.ADMIN)


@pytest.fixture()
def make_property(ctx, officer) -> Callable[..., Property]:
    """Registers a parcel and, unless told otherwise, walks it to `approved`."""
    counter = {"n": 0}

    def _mk(owner: Actor, *, approved: bool = True) -> Property:
        counter["n"] += 1
        machine = PropertyStateMachine(ctx)
        prop = machine.register_property(
            owner,
            plot_number=f"P-{counter['n']:03d}",
            region="Addis Ababa",
            sub_city="Bole",
            kebele="03",
            area=200.0,
            property_type=PropertyType.RESIDENTIAL,
        )
        if approved:
            for target in (
                PropertyStatus.DOCUMENTS_VALIDATED,
                PropertyStatus.PAYMENT_COMPLETED,
                PropertyStatus.APPROVED,
            ):
                machine.request_transition(prop.id, target, officer)
        return prop

    return _mk


@pytest.fixture()
def client(database):
    cfg = Settings(app_env="test", auth_mode="dev", dev_auto_provision=True, database_url="sqlite://")
    app = create_app(cfg, database=database, setup_logging=False)
    with TestClient(app) as c:
        yield c