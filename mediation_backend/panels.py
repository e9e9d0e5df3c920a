"""
Panel Service
=============

Creates and activates the three-member mediation panel of a case.

A panel has exactly one lawyer, one scholar and one community member, each a
distinct active account with the panel_member role. The panel row, its seats
and the case update (panel reference + status) are written in one
transaction.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .db.models import CaseStatus, EventType, Panel, PanelMember, PanelRole, PanelStatus
from .directory import UserDirectory
from .errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PanelPersistenceError,
    ValidationError,
)
from .events import StatusEventHub, record_event
from .lifecycle import CaseWorkflowService, load_case

logger = logging.getLogger(__name__)

PANEL_SIZE = 3
REQUIRED_ROLES = frozenset(PanelRole)
PANEL_CREATION_WINDOW = frozenset({CaseStatus.WITNESS_NOMINATION, CaseStatus.PANEL_FORMATION})


def validate_members(members: Iterable[Mapping[str, Any]]) -> List[Tuple[str, PanelRole]]:
    """
    Check member count, role coverage and user uniqueness.

    Returns:
        List of (user_id, role) pairs

    Raises:
        ValidationError: wrong count, unknown/duplicate/missing role, blank or repeated user id
    """
    entries = list(members or [])
    if len(entries) != PANEL_SIZE:
        raise ValidationError(f"A panel needs exactly {PANEL_SIZE} members, got {len(entries)}", field="members")

    pairs: List[Tuple[str, PanelRole]] = []
    for index, entry in enumerate(entries):
        user_id = str(entry.get("user_id") or "").strip()
        if not user_id:
            raise ValidationError(f"Member #{index + 1} is missing a user id", field=f"members[{index}].user_id")
        role_raw = entry.get("role")
        try:
            role = PanelRole(getattr(role_raw, "value", role_raw))
        except ValueError:
            raise ValidationError(
                f"Member #{index + 1} has unknown role {role_raw!r}", field=f"members[{index}].role"
            )
        pairs.append((user_id, role))

    roles = [role for _, role in pairs]
    if set(roles) != REQUIRED_ROLES:
        missing = sorted(r.value for r in REQUIRED_ROLES - set(roles))
        raise ValidationError(
            "Panel must have one lawyer, one scholar and one community member",
            details={"field": "members", "missing_roles": missing},
        )

    user_ids = [user_id for user_id, _ in pairs]
    if len(set(user_ids)) != len(user_ids):
        raise ValidationError("Panel members must be different users", field="members")

    return pairs


class PanelService(CaseWorkflowService):
    """Panel creation and activation within one database session"""

    def __init__(self, db: Session, directory: Optional[UserDirectory] = None,
                 hub: Optional[StatusEventHub] = None):
        super().__init__(db, hub=hub)
        self.directory = directory or UserDirectory(db)

    def get_panel(self, panel_id: str) -> Panel:
        panel = self.db.query(Panel).filter(Panel.id == panel_id).first()
        if not panel:
            raise NotFoundError(f"Panel {panel_id} not found")
        return panel

    def create_panel(
        self,
        case_id: str,
        members: Iterable[Mapping[str, Any]],
        actor_user_id: Optional[str] = None,
    ) -> Panel:
        """
        Form the panel for a case and move the case to panel_formation.

        Raises:
            NotFoundError: case does not exist
            InvalidStateError: case not in witness_nomination or panel_formation
            ConflictError: case already has a panel
            ValidationError: member list invalid or a member is not panel eligible
            PanelPersistenceError: the combined write failed unexpectedly
        """
        case = load_case(self.db, case_id)
        if case.status not in PANEL_CREATION_WINDOW:
            raise InvalidStateError(
                f"Panel can only be created during witness nomination or panel formation "
                f"(current: {case.status.value})"
            )

        existing = self.db.query(Panel.id).filter(Panel.case_id == case.id).first()
        if case.panel_id or existing:
            raise ConflictError(f"Case {case.case_number} already has a panel")

        pairs = validate_members(members)

        resolved = self.directory.resolve(user_id for user_id, _ in pairs)
        for user_id, role in pairs:
            entry = resolved.get(user_id)
            if entry is None:
                raise ValidationError(f"User {user_id} not found", details={"user_id": user_id})
            if not entry.is_panel_eligible:
                raise ValidationError(
                    f"User {user_id} is not eligible to sit on a panel",
                    details={"user_id": user_id, "role": role.value},
                )

        panel = Panel(
            case_id=case.id,
            status=PanelStatus.CREATED,
            created_by_user_id=actor_user_id,
            members=[PanelMember(user_id=user_id, role=role) for user_id, role in pairs],
        )
        self.db.add(panel)

        try:
            self.db.flush()
            case.panel_id = panel.id
            record_event(
                self.db, case, EventType.PANEL_CREATED,
                actor_user_id=actor_user_id, related_ids={"panel_id": panel.id},
            )
            if case.status != CaseStatus.PANEL_FORMATION:
                self._set_status(case, CaseStatus.PANEL_FORMATION, actor_user_id)
            self.db.commit()
        except (IntegrityError, StaleDataError):
            self.db.rollback()
            self._pending_events.clear()
            raise ConflictError(f"Case {case_id} already has a panel")
        except SQLAlchemyError as e:
            self.db.rollback()
            self._pending_events.clear()
            logger.critical(
                f"Panel creation for case {case_id} failed to persist; "
                f"operator reconciliation required: {e}"
            )
            raise PanelPersistenceError(f"Panel for case {case_id} could not be saved")

        self.db.refresh(panel)
        logger.info(f"Case {case.case_number}: panel {panel.id} created")
        self._publish_pending()
        return panel

    def activate_panel(self, panel_id: str, actor_user_id: Optional[str] = None) -> Panel:
        """
        Activate a panel; a case in panel_formation moves to mediation_in_progress.

        Raises:
            NotFoundError: panel or its case does not exist
        """
        panel = self.get_panel(panel_id)
        case = load_case(self.db, panel.case_id)

        if panel.status != PanelStatus.ACTIVE:
            panel.status = PanelStatus.ACTIVE
            panel.activated_at = datetime.utcnow()
            record_event(
                self.db, case, EventType.PANEL_ACTIVATED,
                actor_user_id=actor_user_id, related_ids={"panel_id": panel.id},
            )

        if case.status == CaseStatus.PANEL_FORMATION:
            self._set_status(case, CaseStatus.MEDIATION_IN_PROGRESS, actor_user_id)

        self._commit()
        self.db.refresh(panel)
        logger.info(f"Case {case.case_number}: panel {panel.id} active")
        self._publish_pending()
        return panel


def panel_to_dict(panel: Panel) -> Dict[str, Any]:
    return {
        "id": panel.id,
        "case_id": panel.case_id,
        "status": panel.status.value,
        "members": [
            {
                "user_id": m.user_id,
                "name": m.user.name if m.user else None,
                "email": m.user.email if m.user else None,
                "role": m.role.value,
            }
            for m in sorted(panel.members, key=lambda m: list(PanelRole).index(m.role))
        ],
        "created_at": panel.created_at.isoformat() if panel.created_at else None,
        "activated_at": panel.activated_at.isoformat() if panel.activated_at else None,
    }
