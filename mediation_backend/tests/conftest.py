"""
Shared fixtures: temp SQLite database, seeded accounts and cases, auth headers.
"""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))


@pytest.fixture
def sqlalchemy_db(tmp_path):
    from mediation_backend.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "mediation.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


@pytest.fixture
def make_user(sqlalchemy_db):
    """Create an account and return its id"""
    from mediation_backend.db.session import get_db_session
    from mediation_backend.db.models import User, UserRole

    counter = {"n": 0}

    def _make(role=UserRole.USER, name=None, email=None, is_active=True):
        counter["n"] += 1
        with get_db_session() as db:
            user = User(
                email=email or f"user{counter['n']}@example.com",
                name=name or f"User {counter['n']}",
                role=role,
                is_active=is_active,
            )
            db.add(user)
            db.flush()
            return user.id

    return _make


@pytest.fixture
def make_case(sqlalchemy_db, make_user):
    """Create a case directly in the database and return its id"""
    from mediation_backend.db.session import get_db_session
    from mediation_backend.db.models import Case, CaseStatus, CaseType

    counter = {"n": 0}

    def _make(status=CaseStatus.REGISTERED, complainant_id=None,
              email="opposite@example.com", phone="+15550001111", title=None, **fields):
        counter["n"] += 1
        owner = complainant_id or make_user()
        with get_db_session() as db:
            case = Case(
                case_number=f"RIT-2020-{counter['n']:06d}",
                case_type=fields.pop("case_type", CaseType.CIVIL),
                title=title or f"Boundary wall dispute {counter['n']}",
                description="Neighbour built a wall across the shared driveway.",
                complainant_id=owner,
                opposite_party_name=fields.pop("opposite_party_name", "Sam Rivera"),
                opposite_party_email=email,
                opposite_party_phone=phone,
                status=status,
                witnesses=fields.pop("witnesses", []),
                **fields,
            )
            db.add(case)
            db.flush()
            return case.id

    return _make


@pytest.fixture
def auth_headers():
    """Bearer header for a user id and role"""
    from mediation_backend.auth import create_access_token
    from mediation_backend.db.models import UserRole

    def _headers(user_id, role=UserRole.USER):
        token = create_access_token({"sub": user_id, "role": role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(sqlalchemy_db):
    from fastapi.testclient import TestClient
    from mediation_backend.api import app

    return TestClient(app)


class RecordingNotifier:
    """Notifier double that records calls and can be told to fail"""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def send(self, email, phone, url, case_number, recipient_name=None):
        self.calls.append({"email": email, "phone": phone, "url": url, "case_number": case_number})
        if self.fail:
            raise RuntimeError("gateway down")
        return [c for c, v in (("email", email), ("sms", phone)) if v]


@pytest.fixture
def notifier():
    return RecordingNotifier()
