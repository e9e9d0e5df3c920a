"""
Panel Formation Tests
=====================

Three-role panel validation, eligibility, single-panel rule and activation.
"""

import pytest
from sqlalchemy.exc import OperationalError

from mediation_backend.db.models import Case, CaseStatus, EventType, Panel, PanelStatus, UserRole
from mediation_backend.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PanelPersistenceError,
    ValidationError,
)
from mediation_backend.events import StatusEventHub
from mediation_backend.panels import PanelService, panel_to_dict, validate_members


@pytest.fixture
def panelists(make_user):
    return {
        "lawyer": make_user(role=UserRole.PANEL_MEMBER, name="Lena Lawyer"),
        "scholar": make_user(role=UserRole.PANEL_MEMBER, name="Sami Scholar"),
        "community": make_user(role=UserRole.PANEL_MEMBER, name="Cara Community"),
    }


def _members(panelists):
    return [{"user_id": uid, "role": role} for role, uid in panelists.items()]


def _create(case_id, members, hub=None):
    from mediation_backend.db.session import get_db_session

    with get_db_session() as db:
        panel = PanelService(db, hub=hub or StatusEventHub()).create_panel(case_id, members)
        return panel.id


# =============================================================================
# validate_members
# =============================================================================

def test_validate_members_accepts_one_per_role():
    pairs = validate_members([
        {"user_id": "u1", "role": "lawyer"},
        {"user_id": "u2", "role": "scholar"},
        {"user_id": "u3", "role": "community"},
    ])
    assert [p[0] for p in pairs] == ["u1", "u2", "u3"]


@pytest.mark.parametrize("members", [
    [{"user_id": "u1", "role": "lawyer"}, {"user_id": "u2", "role": "scholar"}],
    [
        {"user_id": "u1", "role": "lawyer"}, {"user_id": "u2", "role": "lawyer"},
        {"user_id": "u3", "role": "community"},
    ],
    [
        {"user_id": "u1", "role": "lawyer"}, {"user_id": "u2", "role": "scholar"},
        {"user_id": "u3", "role": "judge"},
    ],
    [
        {"user_id": "", "role": "lawyer"}, {"user_id": "u2", "role": "scholar"},
        {"user_id": "u3", "role": "community"},
    ],
    [
        {"user_id": "u1", "role": "lawyer"}, {"user_id": "u1", "role": "scholar"},
        {"user_id": "u3", "role": "community"},
    ],
])
def test_validate_members_rejects(members):
    with pytest.raises(ValidationError):
        validate_members(members)


def test_missing_role_reported():
    with pytest.raises(ValidationError) as exc_info:
        validate_members([
            {"user_id": "u1", "role": "lawyer"}, {"user_id": "u2", "role": "lawyer"},
            {"user_id": "u3", "role": "community"},
        ])
    assert exc_info.value.details["missing_roles"] == ["scholar"]


# =============================================================================
# create_panel
# =============================================================================

@pytest.mark.parametrize("status", [CaseStatus.WITNESS_NOMINATION, CaseStatus.PANEL_FORMATION])
def test_create_panel_moves_case_to_panel_formation(make_case, panelists, status):
    from mediation_backend.db.session import get_db_session

    case_id = make_case(status=status)
    panel_id = _create(case_id, _members(panelists))

    with get_db_session() as db:
        case = db.query(Case).filter(Case.id == case_id).one()
        panel = db.query(Panel).filter(Panel.id == panel_id).one()
        assert case.panel_id == panel_id
        assert case.status == CaseStatus.PANEL_FORMATION
        assert panel.status == PanelStatus.CREATED
        assert {m.role.value: m.user_id for m in panel.members} == panelists
        assert EventType.PANEL_CREATED in [e.event_type for e in case.events]

        data = panel_to_dict(panel)
        assert [m["role"] for m in data["members"]] == ["lawyer", "scholar", "community"]
        assert data["members"][0]["name"] == "Lena Lawyer"


@pytest.mark.parametrize("status", [
    CaseStatus.REGISTERED, CaseStatus.ACCEPTED, CaseStatus.MEDIATION_IN_PROGRESS, CaseStatus.RESOLVED,
])
def test_create_panel_outside_window_rejected(make_case, panelists, status):
    case_id = make_case(status=status)
    with pytest.raises(InvalidStateError):
        _create(case_id, _members(panelists))


def test_second_panel_conflicts(make_case, panelists):
    case_id = make_case(status=CaseStatus.WITNESS_NOMINATION)
    _create(case_id, _members(panelists))

    with pytest.raises(ConflictError):
        _create(case_id, _members(panelists))


def test_regular_user_is_not_eligible(make_case, make_user, panelists):
    from mediation_backend.db.session import get_db_session

    case_id = make_case(status=CaseStatus.WITNESS_NOMINATION)
    panelists["community"] = make_user(role=UserRole.USER)

    with pytest.raises(ValidationError):
        _create(case_id, _members(panelists))

    with get_db_session() as db:
        assert db.query(Panel).count() == 0
        case = db.query(Case).filter(Case.id == case_id).one()
        assert case.panel_id is None
        assert case.status == CaseStatus.WITNESS_NOMINATION


def test_inactive_or_unknown_user_rejected(make_case, make_user, panelists):
    case_id = make_case(status=CaseStatus.WITNESS_NOMINATION)
    panelists["lawyer"] = make_user(role=UserRole.PANEL_MEMBER, is_active=False)
    with pytest.raises(ValidationError):
        _create(case_id, _members(panelists))

    panelists["lawyer"] = "ghost-user"
    with pytest.raises(ValidationError):
        _create(case_id, _members(panelists))


def test_unknown_case_not_found(sqlalchemy_db, panelists):
    with pytest.raises(NotFoundError):
        _create("no-such-case", _members(panelists))


def test_persistence_failure_is_fatal_and_rolled_back(make_case, panelists, monkeypatch):
    from mediation_backend.db.session import get_db_session

    case_id = make_case(status=CaseStatus.WITNESS_NOMINATION)

    with get_db_session() as db:
        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db, "commit", failing_commit)
        with pytest.raises(PanelPersistenceError):
            PanelService(db, hub=StatusEventHub()).create_panel(case_id, _members(panelists))
        monkeypatch.undo()

    with get_db_session() as db:
        assert db.query(Panel).count() == 0
        case = db.query(Case).filter(Case.id == case_id).one()
        assert case.panel_id is None
        assert case.status == CaseStatus.WITNESS_NOMINATION


# =============================================================================
# activate_panel
# =============================================================================

def test_activate_starts_mediation(make_case, panelists):
    from mediation_backend.db.session import get_db_session

    case_id = make_case(status=CaseStatus.WITNESS_NOMINATION)
    panel_id = _create(case_id, _members(panelists))

    with get_db_session() as db:
        service = PanelService(db, hub=StatusEventHub())
        panel = service.activate_panel(panel_id)
        assert panel.status == PanelStatus.ACTIVE
        assert panel.activated_at is not None

        # Idempotent
        again = service.activate_panel(panel_id)
        assert again.status == PanelStatus.ACTIVE

    with get_db_session() as db:
        case = db.query(Case).filter(Case.id == case_id).one()
        assert case.status == CaseStatus.MEDIATION_IN_PROGRESS


def test_activate_unknown_panel(sqlalchemy_db):
    from mediation_backend.db.session import get_db_session

    with get_db_session() as db:
        with pytest.raises(NotFoundError):
            PanelService(db).activate_panel("missing")
