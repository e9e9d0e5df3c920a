"""
Case API Tests
==============

Registration, ownership rules and auth endpoints over HTTP.
"""

import re

import pytest

from mediation_backend.db.models import CaseStatus, UserRole


def _case_body(**overrides):
    body = {
        "case_type": "civil",
        "title": "Shared driveway blocked",
        "description": "The neighbour parks across the shared driveway every night.",
        "opposite_party": {"name": "Sam Rivera", "email": "sam@example.com", "phone": "+1 555 000 1111"},
        "is_in_court": False,
    }
    body.update(overrides)
    return body


# =============================================================================
# Auth
# =============================================================================

def test_register_login_me(client):
    resp = client.post("/auth/register", json={
        "email": "Alice@Example.com", "password": "correct-horse", "name": "Alice Doe",
    })
    assert resp.status_code == 201
    token = resp.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "alice@example.com"
    assert me.json()["role"] == "user"

    login = client.post("/auth/login", json={"email": "alice@example.com", "password": "correct-horse"})
    assert login.status_code == 200
    assert login.json()["token_type"] == "bearer"


def test_duplicate_registration_rejected(client):
    body = {"email": "bob@example.com", "password": "long-enough", "name": "Bob"}
    assert client.post("/auth/register", json=body).status_code == 201
    assert client.post("/auth/register", json=body).status_code == 400


def test_wrong_password_unauthorized(client):
    client.post("/auth/register", json={"email": "cy@example.com", "password": "long-enough", "name": "Cy"})
    resp = client.post("/auth/login", json={"email": "cy@example.com", "password": "wrong-password"})
    assert resp.status_code == 401


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


# =============================================================================
# Cases
# =============================================================================

def test_create_case_assigns_number_and_registered_status(client, make_user, auth_headers):
    user_id = make_user()
    resp = client.post("/api/v1/cases", json=_case_body(), headers=auth_headers(user_id))

    assert resp.status_code == 201
    case = resp.json()["case"]
    assert re.match(r"^RIT-\d{4}-000001$", case["case_number"])
    assert case["status"] == "registered"
    assert case["priority"] == "medium"
    assert case["complainant"]["id"] == user_id

    second = client.post("/api/v1/cases", json=_case_body(), headers=auth_headers(user_id)).json()["case"]
    assert second["case_number"].endswith("-000002")


def test_create_case_requires_auth(client):
    resp = client.post("/api/v1/cases", json=_case_body())
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_court_details_required_when_in_court(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    resp = client.post("/api/v1/cases", json=_case_body(is_in_court=True), headers=headers)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"

    resp = client.post(
        "/api/v1/cases",
        json=_case_body(is_in_court=True, court_details={"court_name": "District Court", "case_number": "CV-12"}),
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.json()["case"]["court_details"]["court_name"] == "District Court"


@pytest.mark.parametrize("override", [
    {"title": "Shrt"},
    {"description": "too short"},
    {"case_type": "maritime"},
    {"opposite_party": {"name": "S"}},
    {"opposite_party": {"name": "Sam", "phone": "12"}},
])
def test_create_case_validation(client, make_user, auth_headers, override):
    resp = client.post("/api/v1/cases", json=_case_body(**override), headers=auth_headers(make_user()))
    assert resp.status_code == 422


def test_list_own_cases_only(client, make_user, make_case, auth_headers):
    alice, bob = make_user(), make_user()
    make_case(complainant_id=alice)
    make_case(complainant_id=alice, status=CaseStatus.CANCELLED)
    make_case(complainant_id=bob)

    resp = client.get("/api/v1/cases", headers=auth_headers(alice))
    assert resp.status_code == 200
    data = resp.json()
    assert data["pagination"]["total_cases"] == 2
    assert all(c["complainant"]["id"] == alice for c in data["cases"])

    filtered = client.get("/api/v1/cases?status=cancelled", headers=auth_headers(alice)).json()
    assert filtered["pagination"]["total_cases"] == 1


def test_case_visible_to_owner_and_admin_not_others(client, make_user, make_case, auth_headers):
    owner, stranger = make_user(), make_user()
    admin = make_user(role=UserRole.ADMIN)
    case_id = make_case(complainant_id=owner)

    assert client.get(f"/api/v1/cases/{case_id}", headers=auth_headers(owner)).status_code == 200
    admin_view = client.get(f"/api/v1/cases/{case_id}", headers=auth_headers(admin, UserRole.ADMIN))
    assert "allowed_next_statuses" in admin_view.json()

    denied = client.get(f"/api/v1/cases/{case_id}", headers=auth_headers(stranger))
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "forbidden"

    missing = client.get("/api/v1/cases/nope", headers=auth_headers(owner))
    assert missing.status_code == 404


def test_owner_updates_descriptive_fields(client, make_user, make_case, auth_headers):
    owner = make_user()
    case_id = make_case(complainant_id=owner)

    resp = client.patch(
        f"/api/v1/cases/{case_id}",
        json={"title": "Driveway and fence dispute", "priority": "high"},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 200
    case = resp.json()["case"]
    assert case["title"] == "Driveway and fence dispute"
    assert case["priority"] == "high"
    assert case["status"] == "registered"

    events = client.get(f"/api/v1/cases/{case_id}/events", headers=auth_headers(owner)).json()
    assert events[-1]["event_type"] == "case_updated"


def test_update_into_court_needs_details(client, make_user, make_case, auth_headers):
    owner = make_user()
    case_id = make_case(complainant_id=owner)
    resp = client.patch(f"/api/v1/cases/{case_id}", json={"is_in_court": True}, headers=auth_headers(owner))
    assert resp.status_code == 422


def test_only_complainant_adds_documents(client, make_user, make_case, auth_headers):
    owner = make_user()
    admin = make_user(role=UserRole.ADMIN)
    case_id = make_case(complainant_id=owner)
    docs = [{"file_name": "a1.pdf", "original_name": "lease.pdf", "file_type": "document", "file_size": 1024}]

    resp = client.post(f"/api/v1/cases/{case_id}/documents", json=docs, headers=auth_headers(owner))
    assert resp.status_code == 200
    assert resp.json()["case"]["documents"][0]["original_name"] == "lease.pdf"

    resp = client.post(f"/api/v1/cases/{case_id}/documents", json=docs, headers=auth_headers(admin, UserRole.ADMIN))
    assert resp.status_code == 403


def test_health_and_security_headers(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["database"] == "ok"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Correlation-ID"]
