"""
Case API
========

Endpoints for registered users managing their own disputes.

- POST  /api/v1/cases                       - Register a dispute
- GET   /api/v1/cases                       - List my cases
- GET   /api/v1/cases/{case_id}             - Case details (owner, admin, panel member)
- PATCH /api/v1/cases/{case_id}             - Edit descriptive fields (owner, admin)
- POST  /api/v1/cases/{case_id}/documents   - Attach document metadata (owner)
- GET   /api/v1/cases/{case_id}/events      - Case timeline
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import AuthContext, require_auth
from .cases import CaseService, case_to_dict
from .db.models import CaseType
from .db.session import get_db
from .schemas import CaseListResponse, CreateCaseRequest, DocumentMetadata, UpdateCaseRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/cases", tags=["Cases"])


@router.post("", status_code=201, summary="Register a new case")
async def create_case(
    request: CreateCaseRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    case = CaseService(db).create_case(auth, request)
    return {"message": "Case registered successfully", "case": case_to_dict(case)}


@router.get("", response_model=CaseListResponse, summary="List my cases")
async def list_my_cases(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    case_type: Optional[CaseType] = None,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return CaseService(db).list_user_cases(auth, page=page, limit=limit, status=status, case_type=case_type)


@router.get("/{case_id}", summary="Get case details")
async def get_case(
    case_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    case = CaseService(db).get_case(case_id, auth)
    return case_to_dict(case, include_admin_fields=auth.is_admin)


@router.patch("/{case_id}", summary="Update case details")
async def update_case(
    case_id: str,
    request: UpdateCaseRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    case = CaseService(db).update_case(case_id, auth, request)
    return {"message": "Case updated successfully", "case": case_to_dict(case)}


@router.post("/{case_id}/documents", summary="Attach document metadata")
async def add_documents(
    case_id: str,
    documents: List[DocumentMetadata],
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    case = CaseService(db).add_documents(case_id, auth, documents)
    return {"message": "Documents added successfully", "case": case_to_dict(case)}


@router.get("/{case_id}/events", summary="Case timeline")
async def case_events(
    case_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return CaseService(db).get_case_events(case_id, auth)
