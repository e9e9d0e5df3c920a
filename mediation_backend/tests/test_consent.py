"""
Consent Response Tests
======================

Single-use consent links: accept/decline effects and rejection order.
"""

from datetime import datetime, timedelta

import pytest

from mediation_backend.consent import ConsentService, parse_action
from mediation_backend.consent_tokens import ConsentTokenSigner
from mediation_backend.db.models import Case, CaseStatus, ConsentResponse
from mediation_backend.errors import (
    AlreadyRespondedError,
    BadFormatError,
    BadSignatureError,
    ExpiredError,
    InvalidActionError,
    MismatchError,
    NotFoundError,
)
from mediation_backend.events import StatusEventHub
from mediation_backend.lifecycle import CaseLifecycleService

SIGNER = ConsentTokenSigner("consent-test-secret")


def _notify(case_id, notifier):
    from mediation_backend.db.session import get_db_session

    with get_db_session() as db:
        result = CaseLifecycleService(db, notifier=notifier, hub=StatusEventHub(), signer=SIGNER) \
            .notify_opposite_party(case_id)
        return result.case.consent_token


def _respond(token, action, hub=None):
    from mediation_backend.db.session import get_db_session

    with get_db_session() as db:
        case = ConsentService(db, signer=SIGNER, hub=hub or StatusEventHub()).respond(token, action)
        return case.status, case.consent_response, case.consent_token


def _load(case_id):
    from mediation_backend.db.session import get_db_session

    with get_db_session() as db:
        case = db.query(Case).filter(Case.id == case_id).one()
        db.expunge(case)
        return case


def test_parse_action():
    assert parse_action("accept") == ConsentResponse.ACCEPTED
    assert parse_action("decline") == ConsentResponse.DECLINED
    for bad in (None, "", "ACCEPT", "maybe", 1):
        with pytest.raises(InvalidActionError):
            parse_action(bad)


def test_accept_moves_awaiting_case_to_accepted(make_case, notifier):
    case_id = make_case()
    token = _notify(case_id, notifier)

    status, response, stored = _respond(token, "accept")

    assert status == CaseStatus.ACCEPTED
    assert response == ConsentResponse.ACCEPTED
    assert stored is None
    assert _load(case_id).consent_responded_at is not None


def test_accept_outside_awaiting_records_without_status_change(make_case, notifier):
    case_id = make_case(status=CaseStatus.ACCEPTED)
    token = _notify(case_id, notifier)

    status, response, _ = _respond(token, "accept")

    assert status == CaseStatus.ACCEPTED
    assert response == ConsentResponse.ACCEPTED


def test_decline_then_replay_already_responded(make_case, notifier):
    case_id = make_case()
    token = _notify(case_id, notifier)
    hub = StatusEventHub()
    received = []
    hub.subscribe(received.append)

    status, response, stored = _respond(token, "decline", hub=hub)

    assert status == CaseStatus.UNRESOLVED
    assert response == ConsentResponse.DECLINED
    assert stored is None
    assert received[0]["to"] == "unresolved"

    with pytest.raises(AlreadyRespondedError):
        _respond(token, "accept")


@pytest.mark.parametrize("current,expected", [
    (CaseStatus.CANCELLED, CaseStatus.UNRESOLVED),
    (CaseStatus.MEDIATION_IN_PROGRESS, CaseStatus.UNRESOLVED),
    (CaseStatus.RESOLVED, CaseStatus.RESOLVED),
])
def test_decline_moves_everything_but_resolved_to_unresolved(make_case, notifier, current, expected):
    from mediation_backend.db.session import get_db_session

    case_id = make_case()
    token = _notify(case_id, notifier)
    with get_db_session() as db:
        db.query(Case).filter(Case.id == case_id).one().status = current

    status, response, _ = _respond(token, "decline")

    assert status == expected
    assert response == ConsentResponse.DECLINED


def test_superseded_token_mismatch(make_case, notifier):
    case_id = make_case()
    old_token = _notify(case_id, notifier)
    new_token = _notify(case_id, notifier)

    with pytest.raises(MismatchError):
        _respond(old_token, "accept")

    assert _respond(new_token, "accept")[0] == CaseStatus.ACCEPTED


def test_stored_expiry_enforced(make_case, notifier):
    from mediation_backend.db.session import get_db_session

    case_id = make_case()
    token = _notify(case_id, notifier)
    with get_db_session() as db:
        case = db.query(Case).filter(Case.id == case_id).one()
        case.consent_expires_at = datetime.utcnow() - timedelta(minutes=1)

    with pytest.raises(ExpiredError):
        _respond(token, "accept")


def test_token_for_deleted_case_not_found(sqlalchemy_db):
    issued = SIGNER.issue("deleted-case-id")
    with pytest.raises(NotFoundError):
        _respond(issued.token, "accept")


def test_invalid_action_checked_before_token(sqlalchemy_db):
    with pytest.raises(InvalidActionError):
        _respond("garbage", "maybe")


@pytest.mark.parametrize("token,error", [
    ("garbage", BadFormatError),
    ("a.1.b.c", BadSignatureError),
])
def test_bad_tokens_rejected(sqlalchemy_db, token, error):
    with pytest.raises(error):
        _respond(token, "accept")


def test_consent_details_for_current_token(make_case, notifier):
    from mediation_backend.db.session import get_db_session

    case_id = make_case(opposite_party_name="Sam Rivera")
    token = _notify(case_id, notifier)

    with get_db_session() as db:
        details = ConsentService(db, signer=SIGNER).get_consent_details(token)

    assert details["case_number"].startswith("RIT-")
    assert details["opposite_party"]["name"] == "Sam Rivera"
    assert details["expires_at"] is not None
