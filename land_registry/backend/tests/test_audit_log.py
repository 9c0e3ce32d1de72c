# backend/tests/test_audit_log.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta

import pytest

from app.domain import audit
from app.domain.errors import AuditImmutableError
from app.models import ApplicationLog, TransferTimelineEntry, utcnow
from app.services.property_state_machine import PropertyStateMachine
from app.services.transfer_workflow import TransferCoordinator
from app.services.workflow_context import WorkflowContext


def test_log_rows_cannot_be_updated(db, make_property, owner):
    prop = make_property(owner)
    row = audit.logs_for_property(db, property_id=prop.id)[0]

    row.notes = "rewritten history"
    with pytest.raises(AuditImmutableError):
        db.commit()
    db.rollback()

    db.refresh(row)
    assert row.notes != "rewritten history"


def test_log_rows_cannot_be_deleted(db, make_property, owner):
    prop = make_property(owner)
    before = len(audit.logs_for_property(db, property_id=prop.id))
    row = audit.logs_for_property(db, property_id=prop.id)[0]

    db.delete(row)
    with pytest.raises(AuditImmutableError):
        db.commit()
    db.rollback()
    assert len(audit.logs_for_property(db, property_id=prop.id)) == before


def test_timeline_rows_are_append_only(ctx, make_property, owner, buyer):
    prop = make_property(owner)
    t = TransferCoordinator(ctx).initiate_transfer(prop.id, "buyer@t.local", "sale", "Sold", owner)
    entry = ctx.db.query(TransferTimelineEntry).filter_by(transfer_id=t.id).one()

    entry.action = "Something else"
    with pytest.raises(AuditImmutableError):
        ctx.db.commit()
    ctx.db.rollback()


def test_entries_record_subject_and_performer(db, make_property, owner):
    prop = make_property(owner)
    latest, *_, first = audit.logs_for_property(db, property_id=prop.id)

    # walked by the officer, so the entry is about the owner but performed by staff
    assert latest.user_id == owner.id
    assert latest.performed_by_role == "land_officer"
    assert latest.previous_status == "payment_completed"

    assert first.action == "application_submitted"
    assert audit.log_metadata(first) == {"plot_number": prop.plot_number, "sub_city": "Bole", "kebele": "03"}


def test_list_logs_filters_and_pages(db, make_property, owner, buyer):
    first = make_property(owner)
    second = make_property(buyer, approved=False)

    rows, total = audit.list_logs(db, filters=audit.LogFilter(property_id=first.id))
    assert total == 4
    assert {r.property_id for r in rows} == {first.id}

    rows, total = audit.list_logs(db, filters=audit.LogFilter(action="application_submitted"))
    assert total == 2
    assert {r.property_id for r in rows} == {first.id, second.id}

    rows, total = audit.list_logs(db, filters=audit.LogFilter(user_id=buyer.id))
    assert total == 1 and rows[0].property_id == second.id

    rows, total = audit.list_logs(db, filters=audit.LogFilter(status="approved"))
    assert total == 1 and rows[0].action == "application_approved"

    rows, total = audit.list_logs(db, filters=audit.LogFilter(), page=2, limit=3)
    assert total == 5
    assert len(rows) == 2

    future = utcnow() + timedelta(days=1)
    rows, total = audit.list_logs(db, filters=audit.LogFilter(start=future))
    assert total == 0 and rows == []


def test_logs_for_user_newest_first(db, make_property, owner):
    make_property(owner)
    rows = audit.logs_for_user(db, user_id=owner.id)
    assert [r.action for r in rows][0] == "application_approved"
    assert [r.id for r in rows] == sorted((r.id for r in rows), reverse=True)
    assert all(isinstance(r, ApplicationLog) for r in rows)


def test_entries_use_the_workflow_clock(db, notifier, owner, buyer):
    fixed = datetime(2030, 1, 2, 3, 4, 5)
    ctx = WorkflowContext(db=db, notifier=notifier, clock=lambda: fixed)
    prop = PropertyStateMachine(ctx).register_property(
        owner,
        plot_number="KL-9",
        region="Addis Ababa",
        sub_city="Kirkos",
        kebele="07",
        area=120,
        property_type="residential",
    )
    t = TransferCoordinator(ctx).initiate_transfer(prop.id, "buyer@t.local", "sale", "Sold", owner)

    logs = audit.logs_for_property(db, property_id=prop.id)
    assert [l.action for l in logs] == ["transfer_initiated", "application_submitted"]
    assert {l.created_at for l in logs} == {fixed}
    assert t.timeline[0].created_at == fixed


def test_blocked_mutation_is_logged_as_error(ctx, make_property, owner, caplog):
    prop = make_property(owner)
    row = audit.logs_for_property(ctx.db, property_id=prop.id)[0]

    with caplog.at_level(logging.INFO, logger="landreg.workflow"):
        with pytest.raises(AuditImmutableError):
            with ctx.unit_of_work("rewrite_log"):
                row.notes = "rewritten history"

    [rec] = [r for r in caplog.records if r.name == "landreg.workflow"]
    assert rec.levelno == logging.ERROR
    assert rec.action == "rewrite_log"
