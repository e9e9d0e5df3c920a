"""
Case Lifecycle Tests
====================

Transition table, admin-only status changes, audit rows and status events.
"""

import itertools

import pytest

from mediation_backend.db.models import CaseStatus, EventType, UserRole
from mediation_backend.errors import (
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from mediation_backend.events import StatusEventHub
from mediation_backend.lifecycle import (
    TERMINAL_STATUSES,
    CaseLifecycleService,
    allowed_next_statuses,
    can_transition,
    parse_status,
)

S = CaseStatus

EXPECTED_EDGES = {
    (S.REGISTERED, S.UNDER_REVIEW), (S.REGISTERED, S.AWAITING_RESPONSE), (S.REGISTERED, S.CANCELLED),
    (S.UNDER_REVIEW, S.AWAITING_RESPONSE), (S.UNDER_REVIEW, S.ACCEPTED), (S.UNDER_REVIEW, S.CANCELLED),
    (S.AWAITING_RESPONSE, S.ACCEPTED), (S.AWAITING_RESPONSE, S.WITNESS_NOMINATION),
    (S.AWAITING_RESPONSE, S.CANCELLED),
    (S.ACCEPTED, S.WITNESS_NOMINATION), (S.ACCEPTED, S.PANEL_FORMATION), (S.ACCEPTED, S.CANCELLED),
    (S.WITNESS_NOMINATION, S.PANEL_FORMATION), (S.WITNESS_NOMINATION, S.CANCELLED),
    (S.PANEL_FORMATION, S.MEDIATION_IN_PROGRESS), (S.PANEL_FORMATION, S.CANCELLED),
    (S.MEDIATION_IN_PROGRESS, S.RESOLVED), (S.MEDIATION_IN_PROGRESS, S.UNRESOLVED),
    (S.MEDIATION_IN_PROGRESS, S.CANCELLED),
}


# =============================================================================
# Pure table checks
# =============================================================================

@pytest.mark.parametrize("current,requested", list(itertools.product(CaseStatus, CaseStatus)))
def test_transition_table(current, requested):
    assert can_transition(current, requested) == ((current, requested) in EXPECTED_EDGES)


def test_terminal_statuses_have_no_exits():
    assert TERMINAL_STATUSES == {S.RESOLVED, S.UNRESOLVED, S.CANCELLED}
    for status in TERMINAL_STATUSES:
        assert allowed_next_statuses(status) == []


def test_allowed_next_statuses_in_workflow_order():
    assert allowed_next_statuses(S.REGISTERED) == [S.UNDER_REVIEW, S.AWAITING_RESPONSE, S.CANCELLED]


def test_parse_status_rejects_unknown():
    assert parse_status("accepted") == S.ACCEPTED
    with pytest.raises(InvalidStatusError):
        parse_status("archived")


# =============================================================================
# Service
# =============================================================================

def _transition(case_id, status, notes=None, role=UserRole.ADMIN, hub=None, notifier=None):
    from mediation_backend.db.session import get_db_session

    with get_db_session() as db:
        service = CaseLifecycleService(db, notifier=notifier, hub=hub or StatusEventHub())
        case = service.transition(case_id, status, notes, caller_role=role, actor_user_id=None)
        return case.status, case.notes


def test_admin_moves_case_and_event_is_recorded(make_case, notifier):
    from mediation_backend.db.session import get_db_session
    from mediation_backend.db.models import Case

    case_id = make_case(status=S.REGISTERED)
    hub = StatusEventHub()
    received = []
    hub.subscribe(received.append)

    status, notes = _transition(case_id, "under_review", "Triaged", hub=hub, notifier=notifier)

    assert status == S.UNDER_REVIEW
    assert notes == "Triaged"
    assert received[0]["type"] == "case_status_changed"
    assert (received[0]["from"], received[0]["to"]) == ("registered", "under_review")

    with get_db_session() as db:
        case = db.query(Case).filter(Case.id == case_id).one()
        changes = [e for e in case.events if e.event_type == EventType.CASE_STATUS_CHANGED]
        assert [(e.from_status, e.to_status) for e in changes] == [("registered", "under_review")]


def test_walk_happy_path_to_resolved(make_case, notifier):
    case_id = make_case(status=S.REGISTERED)
    path = [
        S.UNDER_REVIEW, S.ACCEPTED, S.WITNESS_NOMINATION, S.PANEL_FORMATION,
        S.MEDIATION_IN_PROGRESS, S.RESOLVED,
    ]
    for status in path:
        assert _transition(case_id, status.value, notifier=notifier)[0] == status


def test_invalid_transition_leaves_case_unchanged(make_case, notifier):
    from mediation_backend.db.session import get_db_session
    from mediation_backend.db.models import Case

    case_id = make_case(status=S.REGISTERED)
    hub = StatusEventHub()
    received = []
    hub.subscribe(received.append)

    with pytest.raises(InvalidTransitionError) as exc_info:
        _transition(case_id, "resolved", hub=hub, notifier=notifier)

    assert exc_info.value.details["current_status"] == "registered"
    assert exc_info.value.details["requested_status"] == "resolved"
    assert received == []
    with get_db_session() as db:
        case = db.query(Case).filter(Case.id == case_id).one()
        assert case.status == S.REGISTERED
        assert case.events == []


@pytest.mark.parametrize("terminal", [S.RESOLVED, S.UNRESOLVED, S.CANCELLED])
def test_terminal_cases_cannot_move(make_case, notifier, terminal):
    case_id = make_case(status=terminal)
    with pytest.raises(InvalidTransitionError):
        _transition(case_id, "under_review", notifier=notifier)


def test_cancel_from_mediation(make_case, notifier):
    case_id = make_case(status=S.MEDIATION_IN_PROGRESS)
    assert _transition(case_id, "cancelled", notifier=notifier)[0] == S.CANCELLED


def test_unknown_status_rejected(make_case, notifier):
    case_id = make_case()
    with pytest.raises(InvalidStatusError):
        _transition(case_id, "archived", notifier=notifier)


@pytest.mark.parametrize("role", [UserRole.USER, UserRole.PANEL_MEMBER])
def test_non_admin_cannot_transition(make_case, notifier, role):
    case_id = make_case()
    with pytest.raises(PermissionDeniedError):
        _transition(case_id, "under_review", role=role, notifier=notifier)


def test_missing_case_not_found(sqlalchemy_db, notifier):
    with pytest.raises(NotFoundError):
        _transition("no-such-case", "under_review", notifier=notifier)


def test_notes_over_limit_rejected(make_case, notifier):
    case_id = make_case()
    with pytest.raises(ValidationError):
        _transition(case_id, "under_review", "x" * 1001, notifier=notifier)


def test_listener_failure_does_not_fail_transition(make_case, notifier):
    case_id = make_case(status=S.REGISTERED)
    hub = StatusEventHub()

    def broken(event):
        raise RuntimeError("listener exploded")

    received = []
    hub.subscribe(broken)
    hub.subscribe(received.append)

    assert _transition(case_id, "under_review", hub=hub, notifier=notifier)[0] == S.UNDER_REVIEW
    assert len(received) == 1
