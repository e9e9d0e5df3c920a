"""
Admin API
=========

Administrator endpoints driving the mediation workflow.
All routes require an authenticated admin.

- GET    /api/v1/admin/cases                                - List/filter/search cases
- GET    /api/v1/admin/cases/stats                          - Counts by status and type
- GET    /api/v1/admin/cases/{case_id}                      - Case detail with admin fields
- PATCH  /api/v1/admin/cases/{case_id}/status               - Transition status
- POST   /api/v1/admin/cases/{case_id}/witnesses            - Add witnesses
- DELETE /api/v1/admin/cases/{case_id}/witnesses/{wid}      - Remove witness
- POST   /api/v1/admin/cases/{case_id}/notify               - Send consent link to opposite party
- POST   /api/v1/admin/cases/{case_id}/panel                - Create panel
- GET    /api/v1/admin/panels/{panel_id}                    - Panel detail
- POST   /api/v1/admin/panels/{panel_id}/activate           - Activate panel
- GET    /api/v1/admin/users                                - List accounts by role
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import AuthContext, require_admin
from .cases import CaseService, case_to_dict
from .db.models import CasePriority, CaseType, UserRole
from .db.session import get_db
from .directory import UserDirectory
from .lifecycle import CaseLifecycleService, load_case
from .panels import PanelService, panel_to_dict
from .schemas import (
    AddWitnessesRequest, CaseListResponse, CreatePanelRequest, NotifyResponse, StatusUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


# =============================================================================
# CASES
# =============================================================================

@router.get("/cases", response_model=CaseListResponse, summary="List all cases")
async def list_cases(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    case_type: Optional[CaseType] = None,
    priority: Optional[CasePriority] = None,
    search: Optional[str] = None,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return CaseService(db).list_cases(
        page=page, limit=limit, status=status, case_type=case_type, priority=priority, search=search,
    )


@router.get("/cases/stats", summary="Case statistics")
async def case_stats(
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return CaseService(db).get_statistics()


@router.get("/cases/{case_id}", summary="Get case details")
async def get_case(
    case_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return case_to_dict(load_case(db, case_id), include_admin_fields=True)


@router.patch("/cases/{case_id}/status", summary="Change case status")
async def update_case_status(
    case_id: str,
    request: StatusUpdateRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    case = CaseLifecycleService(db).transition(
        case_id, request.status, request.notes,
        caller_role=auth.role, actor_user_id=auth.user_id,
    )
    return {"message": "Case status updated successfully", "case": case_to_dict(case, include_admin_fields=True)}


# =============================================================================
# WITNESSES
# =============================================================================

@router.post("/cases/{case_id}/witnesses", summary="Add witnesses to a case")
async def add_witnesses(
    case_id: str,
    request: AddWitnessesRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    case = CaseLifecycleService(db).add_witnesses(
        case_id, [w.model_dump() for w in request.witnesses], actor_user_id=auth.user_id,
    )
    return {"message": "Witnesses added successfully", "case": case_to_dict(case, include_admin_fields=True)}


@router.delete("/cases/{case_id}/witnesses/{witness_id}", summary="Remove a witness")
async def remove_witness(
    case_id: str,
    witness_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    case = CaseLifecycleService(db).remove_witness(case_id, witness_id, actor_user_id=auth.user_id)
    return {"message": "Witness removed successfully", "case": case_to_dict(case, include_admin_fields=True)}


# =============================================================================
# OPPOSITE PARTY
# =============================================================================

@router.post("/cases/{case_id}/notify", response_model=NotifyResponse, summary="Notify the opposite party")
def notify_opposite_party(
    case_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = CaseLifecycleService(db).notify_opposite_party(case_id, actor_user_id=auth.user_id)
    return NotifyResponse(
        case_id=result.case.id,
        case_number=result.case.case_number,
        status=result.case.status.value,
        consent_url=result.consent_url,
        expires_at=result.expires_at,
        delivered=result.delivered,
        channels=result.channels,
    )


# =============================================================================
# PANELS
# =============================================================================

@router.post("/cases/{case_id}/panel", summary="Create the mediation panel")
async def create_panel(
    case_id: str,
    request: CreatePanelRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    panel = PanelService(db).create_panel(
        case_id, [m.model_dump() for m in request.members], actor_user_id=auth.user_id,
    )
    case = load_case(db, case_id)
    return {
        "message": "Panel created successfully",
        "panel": panel_to_dict(panel),
        "case": case_to_dict(case, include_admin_fields=True),
    }


@router.get("/panels/{panel_id}", summary="Get panel details")
async def get_panel(
    panel_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return panel_to_dict(PanelService(db).get_panel(panel_id))


@router.post("/panels/{panel_id}/activate", summary="Activate a panel")
async def activate_panel(
    panel_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    panel = PanelService(db).activate_panel(panel_id, actor_user_id=auth.user_id)
    case = load_case(db, panel.case_id)
    return {
        "message": "Panel activated successfully",
        "panel": panel_to_dict(panel),
        "case": case_to_dict(case, include_admin_fields=True),
    }


# =============================================================================
# USERS
# =============================================================================

@router.get("/users", summary="List accounts by role")
async def list_users(
    role: UserRole = UserRole.PANEL_MEMBER,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entries = UserDirectory(db).list_by_role(role)
    return [
        {"id": e.user_id, "name": e.name, "email": e.email, "role": e.role.value}
        for e in entries
    ]
