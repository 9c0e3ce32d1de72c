# backend/tests/test_transition_tables.py
from __future__ import annotations

import pytest

from app.domain.enums import DisputeStatus, PropertyStatus, TransferStatus
from app.domain.errors import InvalidStateTransition
from app.domain.workflow_states import (
    ACTIVE_DISPUTE_STATUSES,
    ACTIVE_TRANSFER_STATUSES,
    DISPUTE_TRANSITIONS,
    PROPERTY_TRANSITIONS,
    TRANSFER_TRANSITIONS,
)


def test_property_happy_path_edges():
    s = PropertyStatus.PENDING
    for event, expected in (
        ("validate_documents", PropertyStatus.DOCUMENTS_VALIDATED),
        ("complete_payment", PropertyStatus.PAYMENT_COMPLETED),
        ("approve", PropertyStatus.APPROVED),
        ("complete_transfer", PropertyStatus.TRANSFERRED),
    ):
        s = PROPERTY_TRANSITIONS.next_state(s, event)
        assert s == expected


def test_property_cannot_skip_payment():
    with pytest.raises(InvalidStateTransition) as ei:
        PROPERTY_TRANSITIONS.next_state("documents_validated", "approve")
    assert ei.value.current == "documents_validated"
    assert ei.value.event == "approve"


def test_property_transferred_only_reachable_from_approved():
    assert PROPERTY_TRANSITIONS.sources("complete_transfer") == frozenset({PropertyStatus.APPROVED})


def test_property_reject_and_update_sources():
    expected = {PropertyStatus.PENDING, PropertyStatus.DOCUMENTS_VALIDATED, PropertyStatus.PAYMENT_COMPLETED}
    assert PROPERTY_TRANSITIONS.sources("reject") == expected
    assert PROPERTY_TRANSITIONS.sources("request_update") == expected
    assert PROPERTY_TRANSITIONS.next_state("needs_update", "resubmit") == PropertyStatus.PENDING


def test_transfer_terminal_states_have_no_exits():
    for terminal in (TransferStatus.COMPLETED, TransferStatus.CANCELLED, TransferStatus.REJECTED):
        assert TRANSFER_TRANSITIONS.is_terminal(terminal)
        for event in TRANSFER_TRANSITIONS.events():
            assert not TRANSFER_TRANSITIONS.allows(terminal, event)


def test_transfer_cancel_only_before_verification():
    assert TRANSFER_TRANSITIONS.sources("cancel") == frozenset(
        {TransferStatus.INITIATED, TransferStatus.DOCUMENTS_PENDING, TransferStatus.UNDER_REVIEW}
    )


def test_transfer_reject_from_every_non_terminal_state():
    assert TRANSFER_TRANSITIONS.sources("reject") == frozenset(TRANSFER_TRANSITIONS.active_states)


def test_dispute_edges_and_terminals():
    assert DISPUTE_TRANSITIONS.next_state("submitted", "begin_review") == DisputeStatus.UNDER_REVIEW
    assert DISPUTE_TRANSITIONS.next_state("under_review", "assign") == DisputeStatus.INVESTIGATION
    assert DISPUTE_TRANSITIONS.next_state("investigation", "schedule_mediation") == DisputeStatus.MEDIATION
    assert DISPUTE_TRANSITIONS.next_state("mediation", "resolve") == DisputeStatus.RESOLVED

    # mediation cannot be withdrawn, submitted cannot be resolved
    assert not DISPUTE_TRANSITIONS.allows("mediation", "withdraw")
    assert not DISPUTE_TRANSITIONS.allows("submitted", "resolve")

    for terminal in (DisputeStatus.RESOLVED, DisputeStatus.WITHDRAWN):
        assert not DISPUTE_TRANSITIONS.allows(terminal, "add_evidence")


def test_active_status_tuples_match_tables():
    assert set(ACTIVE_TRANSFER_STATUSES) == {
        "initiated",
        "documents_pending",
        "under_review",
        "verification_pending",
        "approved",
    }
    assert set(ACTIVE_DISPUTE_STATUSES) == {"submitted", "under_review", "investigation", "mediation"}


def test_unknown_state_string_is_rejected():
    with pytest.raises(ValueError):
        TRANSFER_TRANSITIONS.coerce("teleported")
