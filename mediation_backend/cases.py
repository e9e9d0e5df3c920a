"""
Case Management
===============

Registration, lookup, listing and descriptive edits of cases.

Status, panel and consent fields are never written here; they change only
through lifecycle.py, panels.py and consent.py.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .auth import AuthContext
from .case_numbers import reserve_case_number
from .config import Settings, get_settings
from .db.models import (
    Case, CaseEvent, CasePriority, CaseStatus, CaseType, EventType, Panel, PanelMember,
)
from .errors import ConflictError, PermissionDeniedError, ValidationError
from .events import record_event
from .lifecycle import allowed_next_statuses, commit_case_changes, load_case, parse_status
from .schemas import CreateCaseRequest, DocumentMetadata, UpdateCaseRequest

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
ACTIVE_STATUSES = (
    CaseStatus.REGISTERED, CaseStatus.UNDER_REVIEW, CaseStatus.AWAITING_RESPONSE,
    CaseStatus.ACCEPTED, CaseStatus.WITNESS_NOMINATION, CaseStatus.PANEL_FORMATION,
    CaseStatus.MEDIATION_IN_PROGRESS,
)


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def case_to_dict(case: Case, include_admin_fields: bool = False) -> Dict[str, Any]:
    """API representation of a case"""
    data = {
        "id": case.id,
        "case_number": case.case_number,
        "case_type": case.case_type.value,
        "title": case.title,
        "description": case.description,
        "status": case.status.value,
        "priority": case.priority.value,
        "complainant": {
            "id": case.complainant_id,
            "name": case.complainant.name if case.complainant else None,
            "email": case.complainant.email if case.complainant else None,
        },
        "opposite_party": {
            "name": case.opposite_party_name,
            "email": case.opposite_party_email,
            "phone": case.opposite_party_phone,
            "address": case.opposite_party_address or {},
        },
        "is_in_court": case.is_in_court,
        "court_details": case.court_details,
        "notes": case.notes,
        "tags": case.tags or [],
        "documents": case.documents or [],
        "witnesses": case.witnesses or [],
        "panel_id": case.panel_id,
        "opposite_party_notified": case.opposite_party_notified,
        "opposite_party_response": case.consent_response.value if case.consent_response else None,
        "opposite_party_response_at": _iso(case.consent_responded_at),
        "created_at": _iso(case.created_at),
        "updated_at": _iso(case.updated_at),
    }
    if include_admin_fields:
        data["allowed_next_statuses"] = [s.value for s in allowed_next_statuses(case.status)]
        data["consent"] = {
            "outstanding": bool(case.consent_token),
            "expires_at": _iso(case.consent_expires_at),
            "responded_at": _iso(case.consent_responded_at),
            "response": case.consent_response.value if case.consent_response else None,
        }
    return data


def event_to_dict(event: CaseEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "event_type": event.event_type.value,
        "from_status": event.from_status,
        "to_status": event.to_status,
        "actor_user_id": event.actor_user_id,
        "related_ids": event.related_ids_json or {},
        "note": event.note,
        "created_at": _iso(event.created_at),
    }


def paginate(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_cases": total,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def _clamp_paging(page: int, limit: int):
    page = max(1, int(page or 1))
    limit = max(1, min(MAX_PAGE_SIZE, int(limit or DEFAULT_PAGE_SIZE)))
    return page, limit


def _document_record(doc: DocumentMetadata, uploaded_by: str) -> Dict[str, Any]:
    return {
        "file_name": doc.file_name,
        "original_name": doc.original_name,
        "file_type": doc.file_type.value,
        "file_size": doc.file_size,
        "uploaded_at": datetime.utcnow().isoformat(),
        "uploaded_by": uploaded_by,
    }


# =============================================================================
# SERVICE
# =============================================================================

class CaseService:
    """Case CRUD within one database session"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # access
    # -------------------------------------------------------------------------

    def _sits_on_panel(self, case: Case, user_id: str) -> bool:
        if not case.panel_id:
            return False
        seat = (
            self.db.query(PanelMember)
            .join(Panel, Panel.id == PanelMember.panel_id)
            .filter(Panel.case_id == case.id, PanelMember.user_id == user_id)
            .first()
        )
        return seat is not None

    def get_case(self, case_id: str, auth: AuthContext) -> Case:
        """
        Load a case the caller may see: owner, admin, or a member of its panel.

        Raises:
            NotFoundError: case does not exist
            PermissionDeniedError: caller may not see it
        """
        case = load_case(self.db, case_id)
        if auth.is_admin or case.complainant_id == auth.user_id:
            return case
        if auth.is_panel_member and self._sits_on_panel(case, auth.user_id):
            return case
        raise PermissionDeniedError("Access denied")

    def _get_editable_case(self, case_id: str, auth: AuthContext) -> Case:
        case = load_case(self.db, case_id)
        if not auth.is_admin and case.complainant_id != auth.user_id:
            raise PermissionDeniedError("You are not authorized to edit this case")
        return case

    # -------------------------------------------------------------------------
    # create
    # -------------------------------------------------------------------------

    def create_case(self, auth: AuthContext, request: CreateCaseRequest) -> Case:
        """
        Register a dispute on behalf of the caller.

        Each attempt reserves a fresh number from the yearly sequence; a
        collision on the unique case number (or on the first sequence row of a
        year) is retried a bounded number of times.

        Raises:
            ConflictError: no unique case number after the configured attempts
        """
        documents = [_document_record(d, auth.user_id) for d in request.documents]
        max_attempts = self.settings.case_number_max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                case_number = reserve_case_number(prefix=self.settings.case_number_prefix)
            except IntegrityError as e:
                logger.warning(f"Case number sequence race on attempt {attempt}/{max_attempts}: {e.orig}")
                continue

            try:
                case = Case(
                    case_number=case_number,
                    case_type=request.case_type,
                    title=request.title,
                    description=request.description,
                    complainant_id=auth.user_id,
                    opposite_party_name=request.opposite_party.name,
                    opposite_party_email=(
                        str(request.opposite_party.email).lower() if request.opposite_party.email else None
                    ),
                    opposite_party_phone=request.opposite_party.phone,
                    opposite_party_address=(
                        request.opposite_party.address.model_dump() if request.opposite_party.address else {}
                    ),
                    is_in_court=request.is_in_court,
                    court_details=request.court_details.model_dump() if request.court_details else None,
                    status=CaseStatus.REGISTERED,
                    priority=request.priority,
                    notes=request.notes,
                    tags=list(request.tags),
                    documents=documents,
                    witnesses=[],
                )
                self.db.add(case)
                record_event(
                    self.db, case, EventType.CASE_CREATED,
                    actor_user_id=auth.user_id, to_status=CaseStatus.REGISTERED,
                )
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(f"Case number collision on attempt {attempt}/{max_attempts}: {e.orig}")
                continue

            self.db.refresh(case)
            logger.info(f"Case {case.case_number} registered by user {auth.user_id}")
            return case

        logger.error(f"Could not allocate a unique case number after {max_attempts} attempts")
        raise ConflictError("Could not allocate a case number, please retry")

    # -------------------------------------------------------------------------
    # read
    # -------------------------------------------------------------------------

    def list_user_cases(
        self,
        auth: AuthContext,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        status: Optional[str] = None,
        case_type: Optional[CaseType] = None,
    ) -> Dict[str, Any]:
        """The caller's own cases, newest first"""
        query = self.db.query(Case).filter(Case.complainant_id == auth.user_id)
        if status:
            query = query.filter(Case.status == parse_status(status))
        if case_type:
            query = query.filter(Case.case_type == case_type)
        return self._page(query, page, limit, include_admin_fields=False)

    def list_cases(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        status: Optional[str] = None,
        case_type: Optional[CaseType] = None,
        priority: Optional[CasePriority] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        All cases (admin view), newest first.

        search matches title, case number and opposite-party name, case-insensitively.
        """
        query = self.db.query(Case)
        if status:
            query = query.filter(Case.status == parse_status(status))
        if case_type:
            query = query.filter(Case.case_type == case_type)
        if priority:
            query = query.filter(Case.priority == priority)
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(or_(
                func.lower(Case.title).like(pattern),
                func.lower(Case.case_number).like(pattern),
                func.lower(Case.opposite_party_name).like(pattern),
            ))
        return self._page(query, page, limit, include_admin_fields=True)

    def _page(self, query, page: int, limit: int, include_admin_fields: bool) -> Dict[str, Any]:
        page, limit = _clamp_paging(page, limit)
        total = query.count()
        cases = (
            query.order_by(Case.created_at.desc(), Case.case_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "cases": [case_to_dict(c, include_admin_fields=include_admin_fields) for c in cases],
            "pagination": paginate(total, page, limit),
        }

    def get_case_events(self, case_id: str, auth: AuthContext) -> List[Dict[str, Any]]:
        case = self.get_case(case_id, auth)
        return [event_to_dict(e) for e in case.events]

    def get_statistics(self) -> Dict[str, Any]:
        """Counts by status and by type"""
        by_status = dict(self.db.query(Case.status, func.count(Case.id)).group_by(Case.status).all())
        by_type = dict(self.db.query(Case.case_type, func.count(Case.id)).group_by(Case.case_type).all())
        return {
            "total_cases": sum(by_status.values()),
            "active_cases": sum(n for s, n in by_status.items() if s in ACTIVE_STATUSES),
            "status_breakdown": {s.value: by_status.get(s, 0) for s in CaseStatus},
            "type_breakdown": {t.value: by_type.get(t, 0) for t in CaseType},
        }

    # -------------------------------------------------------------------------
    # update
    # -------------------------------------------------------------------------

    def update_case(self, case_id: str, auth: AuthContext, request: UpdateCaseRequest) -> Case:
        """
        Edit descriptive fields. Only fields present in the request change.

        Raises:
            NotFoundError / PermissionDeniedError
            ValidationError: court pendency set without court details
        """
        case = self._get_editable_case(case_id, auth)
        changes = request.model_dump(exclude_unset=True)
        if not changes:
            return case

        in_court = changes.get("is_in_court")
        in_court = case.is_in_court if in_court is None else in_court
        if in_court and not (request.court_details or case.court_details):
            raise ValidationError("Court details are required when the case is in court", field="court_details")

        for name in ("case_type", "title", "description", "priority", "notes", "tags"):
            if name in changes and changes[name] is not None:
                value = changes[name]
                setattr(case, name, value.strip() if isinstance(value, str) else value)

        party = request.opposite_party
        if party is not None:
            case.opposite_party_name = party.name
            if party.email:
                case.opposite_party_email = str(party.email).lower()
            if party.phone:
                case.opposite_party_phone = party.phone
            if party.address is not None:
                merged = dict(case.opposite_party_address or {})
                merged.update({k: v for k, v in party.address.model_dump().items() if v})
                case.opposite_party_address = merged

        if "is_in_court" in changes and changes["is_in_court"] is not None:
            case.is_in_court = changes["is_in_court"]
        if request.court_details is not None:
            case.court_details = request.court_details.model_dump()

        record_event(
            self.db, case, EventType.CASE_UPDATED,
            actor_user_id=auth.user_id, related_ids={"fields": sorted(changes)},
        )
        commit_case_changes(self.db)
        self.db.refresh(case)
        logger.info(f"Case {case.case_number} updated by {auth.user_id}: {sorted(changes)}")
        return case

    def add_documents(self, case_id: str, auth: AuthContext, documents: List[DocumentMetadata]) -> Case:
        """Append document metadata; only the complainant may add documents"""
        case = load_case(self.db, case_id)
        if case.complainant_id != auth.user_id:
            raise PermissionDeniedError("Only the complainant can add documents")
        if not documents:
            raise ValidationError("At least one document is required", field="documents")

        records = [_document_record(d, auth.user_id) for d in documents]
        case.documents = list(case.documents or []) + records
        record_event(
            self.db, case, EventType.DOCUMENT_ADDED,
            actor_user_id=auth.user_id, related_ids={"file_names": [r["file_name"] for r in records]},
        )
        commit_case_changes(self.db)
        self.db.refresh(case)
        logger.info(f"Case {case.case_number}: {len(records)} document(s) added")
        return case
