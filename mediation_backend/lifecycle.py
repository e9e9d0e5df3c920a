"""
Case Lifecycle Engine
=====================

Validates and applies case status transitions and the workflow operations
that carry implicit status side effects:

- transition: admin-driven move along the transition table
- add_witnesses / remove_witness: witness nomination (accepted -> witness_nomination)
- notify_opposite_party: issue a consent link (registered/under_review -> awaiting_response)

Transition table (current -> allowed next); terminal states have no edges:

    registered            -> under_review, awaiting_response, cancelled
    under_review          -> awaiting_response, accepted, cancelled
    awaiting_response     -> accepted, witness_nomination, cancelled
    accepted              -> witness_nomination, panel_formation, cancelled
    witness_nomination    -> panel_formation, cancelled
    panel_formation       -> mediation_in_progress, cancelled
    mediation_in_progress -> resolved, unresolved, cancelled

State changes are committed before status events are published and before
the notification gateway is called.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .config import Settings, get_settings
from .consent_tokens import ConsentTokenSigner, get_consent_signer
from .db.models import Case, CaseStatus, EventType, UserRole, WitnessSide
from .errors import (
    ConflictError,
    InvalidStateError,
    InvalidStatusError,
    InvalidTransitionError,
    MissingContactError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .events import StatusEventHub, get_event_hub, record_event, status_changed_payload
from .notifications import ConsentInviteNotifier

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION TABLE
# =============================================================================

ALLOWED_TRANSITIONS: Dict[CaseStatus, FrozenSet[CaseStatus]] = {
    CaseStatus.REGISTERED: frozenset({
        CaseStatus.UNDER_REVIEW, CaseStatus.AWAITING_RESPONSE, CaseStatus.CANCELLED,
    }),
    CaseStatus.UNDER_REVIEW: frozenset({
        CaseStatus.AWAITING_RESPONSE, CaseStatus.ACCEPTED, CaseStatus.CANCELLED,
    }),
    CaseStatus.AWAITING_RESPONSE: frozenset({
        CaseStatus.ACCEPTED, CaseStatus.WITNESS_NOMINATION, CaseStatus.CANCELLED,
    }),
    CaseStatus.ACCEPTED: frozenset({
        CaseStatus.WITNESS_NOMINATION, CaseStatus.PANEL_FORMATION, CaseStatus.CANCELLED,
    }),
    CaseStatus.WITNESS_NOMINATION: frozenset({
        CaseStatus.PANEL_FORMATION, CaseStatus.CANCELLED,
    }),
    CaseStatus.PANEL_FORMATION: frozenset({
        CaseStatus.MEDIATION_IN_PROGRESS, CaseStatus.CANCELLED,
    }),
    CaseStatus.MEDIATION_IN_PROGRESS: frozenset({
        CaseStatus.RESOLVED, CaseStatus.UNRESOLVED, CaseStatus.CANCELLED,
    }),
    CaseStatus.RESOLVED: frozenset(),
    CaseStatus.UNRESOLVED: frozenset(),
    CaseStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)
WITNESS_NOMINATION_WINDOW = frozenset({CaseStatus.ACCEPTED, CaseStatus.WITNESS_NOMINATION})
NOTIFY_ADVANCES_FROM = frozenset({CaseStatus.REGISTERED, CaseStatus.UNDER_REVIEW})

MAX_NOTES_LENGTH = 1000
MAX_WITNESS_NAME_LENGTH = 100


def parse_status(value: Any) -> CaseStatus:
    """Coerce a raw value to a CaseStatus, raising InvalidStatusError"""
    if isinstance(value, CaseStatus):
        return value
    try:
        return CaseStatus(value)
    except ValueError:
        raise InvalidStatusError(f"Unknown case status: {value!r}")


def can_transition(current: CaseStatus, requested: CaseStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def allowed_next_statuses(current: CaseStatus) -> List[CaseStatus]:
    """Allowed next statuses in workflow order"""
    allowed = ALLOWED_TRANSITIONS.get(current, frozenset())
    return [s for s in CaseStatus if s in allowed]


def load_case(db: Session, case_id: str) -> Case:
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise NotFoundError(f"Case {case_id} not found")
    return case


def commit_case_changes(db: Session) -> None:
    """Commit, mapping a stale version write to ConflictError"""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConflictError("Case was modified concurrently, please retry")


def to_unix_datetime(timestamp: int) -> datetime:
    """Naive UTC datetime for a unix timestamp (matches datetime.utcnow columns)"""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


# =============================================================================
# WITNESS VALIDATION
# =============================================================================

def _clean_optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_witness_records(witnesses: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Validate witness entries and build the records stored on the case.

    Raises:
        ValidationError: empty list, missing name, or missing/unknown side
    """
    entries = list(witnesses or [])
    if not entries:
        raise ValidationError("At least one witness is required", field="witnesses")

    now = datetime.utcnow().isoformat()
    records = []
    for index, entry in enumerate(entries):
        name = _clean_optional(entry.get("name"))
        if not name:
            raise ValidationError(f"Witness #{index + 1} is missing a name", field=f"witnesses[{index}].name")
        if len(name) > MAX_WITNESS_NAME_LENGTH:
            raise ValidationError(
                f"Witness #{index + 1} name exceeds {MAX_WITNESS_NAME_LENGTH} characters",
                field=f"witnesses[{index}].name",
            )

        side_raw = entry.get("side")
        side_value = getattr(side_raw, "value", side_raw)
        try:
            side = WitnessSide(side_value)
        except ValueError:
            raise ValidationError(
                f"Witness #{index + 1} must have side 'complainant' or 'opposite'",
                field=f"witnesses[{index}].side",
            )

        records.append({
            "id": str(uuid.uuid4()),
            "name": name,
            "email": _clean_optional(entry.get("email")),
            "phone": _clean_optional(entry.get("phone")),
            "relation": _clean_optional(entry.get("relation")),
            "side": side.value,
            "added_at": now,
        })
    return records


# =============================================================================
# ENGINE
# =============================================================================

@dataclass
class NotifyResult:
    """Outcome of notify_opposite_party"""
    case: Case
    consent_url: str
    expires_at: datetime
    delivered: bool
    channels: List[str] = field(default_factory=list)


class CaseWorkflowService:
    """
    Shared plumbing for services that change case status.

    Status changes made through _set_status are audited immediately and
    published to the event hub only after a successful commit.
    """

    def __init__(self, db: Session, hub: Optional[StatusEventHub] = None):
        self.db = db
        self.hub = hub or get_event_hub()
        self._pending_events: List[Dict[str, Any]] = []

    def _set_status(self, case: Case, new_status: CaseStatus, actor_user_id: Optional[str],
                    note: Optional[str] = None) -> Tuple[CaseStatus, CaseStatus]:
        old_status = case.status
        case.status = new_status
        record_event(
            self.db, case, EventType.CASE_STATUS_CHANGED,
            actor_user_id=actor_user_id, from_status=old_status, to_status=new_status, note=note,
        )
        self._pending_events.append(status_changed_payload(case, old_status, new_status))
        logger.info(f"Case {case.case_number}: {old_status.value} -> {new_status.value}")
        return old_status, new_status

    def _commit(self) -> None:
        try:
            commit_case_changes(self.db)
        except Exception:
            self._pending_events.clear()
            raise

    def _publish_pending(self) -> None:
        events, self._pending_events = self._pending_events, []
        for event in events:
            self.hub.publish(event)


class CaseLifecycleService(CaseWorkflowService):
    """Applies lifecycle operations to cases within one database session"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[ConsentInviteNotifier] = None,
        hub: Optional[StatusEventHub] = None,
        signer: Optional[ConsentTokenSigner] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db, hub=hub)
        self.settings = settings or get_settings()
        self.notifier = notifier or ConsentInviteNotifier(self.settings)
        self.signer = signer or get_consent_signer()

    def transition(
        self,
        case_id: str,
        requested_status: Any,
        notes: Optional[str] = None,
        *,
        caller_role: UserRole,
        actor_user_id: Optional[str] = None,
    ) -> Case:
        """
        Move a case to a new status along the transition table.

        Raises:
            PermissionDeniedError: caller is not an admin
            NotFoundError: case does not exist
            InvalidStatusError: requested status is not a lifecycle state
            InvalidTransitionError: requested status not reachable from current
            ValidationError: notes too long
        """
        if caller_role != UserRole.ADMIN:
            raise PermissionDeniedError("Only administrators can change case status")

        case = load_case(self.db, case_id)
        requested = parse_status(requested_status)

        if not can_transition(case.status, requested):
            raise InvalidTransitionError(
                f"Cannot move case from {case.status.value} to {requested.value}",
                details={
                    "current_status": case.status.value,
                    "requested_status": requested.value,
                    "allowed": [s.value for s in allowed_next_statuses(case.status)],
                },
            )

        if notes is not None:
            if len(notes) > MAX_NOTES_LENGTH:
                raise ValidationError(f"Notes exceed {MAX_NOTES_LENGTH} characters", field="notes")
            case.notes = notes

        self._set_status(case, requested, actor_user_id, note=notes)
        self._commit()
        self.db.refresh(case)
        self._publish_pending()
        return case

    def add_witnesses(
        self,
        case_id: str,
        witnesses: Iterable[Mapping[str, Any]],
        actor_user_id: Optional[str] = None,
    ) -> Case:
        """
        Append witnesses to a case.

        Allowed while the case is accepted or in witness nomination. A case in
        accepted moves to witness_nomination.

        Raises:
            NotFoundError: case does not exist
            InvalidStateError: case outside the nomination window
            ValidationError: empty list, or an entry without name or side
        """
        case = load_case(self.db, case_id)
        if case.status not in WITNESS_NOMINATION_WINDOW:
            raise InvalidStateError(
                f"Witnesses can only be added while the case is accepted or in witness nomination "
                f"(current: {case.status.value})"
            )

        records = build_witness_records(witnesses)
        # Reassign so the JSON column is flagged dirty
        case.witnesses = list(case.witnesses or []) + records
        record_event(
            self.db, case, EventType.WITNESSES_ADDED,
            actor_user_id=actor_user_id,
            related_ids={"witness_ids": [r["id"] for r in records]},
        )

        if case.status == CaseStatus.ACCEPTED:
            self._set_status(case, CaseStatus.WITNESS_NOMINATION, actor_user_id)

        self._commit()
        self.db.refresh(case)
        logger.info(f"Case {case.case_number}: added {len(records)} witness(es)")
        self._publish_pending()
        return case

    def remove_witness(self, case_id: str, witness_id: str, actor_user_id: Optional[str] = None) -> Case:
        """
        Remove a witness from a case. Status is unchanged.

        Raises:
            NotFoundError: case or witness does not exist
        """
        case = load_case(self.db, case_id)
        current = list(case.witnesses or [])
        remaining = [w for w in current if w.get("id") != witness_id]
        if len(remaining) == len(current):
            raise NotFoundError(f"Witness {witness_id} not found on case {case.case_number}")

        case.witnesses = remaining
        record_event(
            self.db, case, EventType.WITNESS_REMOVED,
            actor_user_id=actor_user_id, related_ids={"witness_id": witness_id},
        )
        self._commit()
        self.db.refresh(case)
        logger.info(f"Case {case.case_number}: removed witness {witness_id}")
        return case

    def notify_opposite_party(self, case_id: str, actor_user_id: Optional[str] = None) -> NotifyResult:
        """
        Issue a fresh consent link and send it to the opposite party.

        Any previous consent record on the case is replaced. A case in
        registered or under_review moves to awaiting_response. The new token
        is committed before the gateway is called; gateway failures are logged
        and reported as delivered=False.

        Raises:
            NotFoundError: case does not exist
            MissingContactError: opposite party has neither email nor phone
        """
        case = load_case(self.db, case_id)
        email = (case.opposite_party_email or "").strip() or None
        phone = (case.opposite_party_phone or "").strip() or None
        if not email and not phone:
            raise MissingContactError(f"Case {case.case_number} has no opposite-party email or phone")

        if case.consent_token and case.consent_responded_at is None:
            logger.info(f"Case {case.case_number}: superseding outstanding consent link")

        issued = self.signer.issue(case.id, valid_days=self.settings.consent_valid_days)
        expires_at = to_unix_datetime(issued.expires_at)

        case.consent_token = issued.token
        case.consent_expires_at = expires_at
        case.consent_responded_at = None
        case.consent_response = None
        case.opposite_party_notified = True
        case.opposite_party_notified_at = datetime.utcnow()
        record_event(
            self.db, case, EventType.CONSENT_ISSUED,
            actor_user_id=actor_user_id,
            related_ids={"expires_at": expires_at.isoformat()},
        )

        if case.status in NOTIFY_ADVANCES_FROM:
            self._set_status(case, CaseStatus.AWAITING_RESPONSE, actor_user_id)

        self._commit()
        self.db.refresh(case)
        logger.info(f"Case {case.case_number}: consent link issued, expires {expires_at.isoformat()}")
        self._publish_pending()

        consent_url = self.settings.consent_url(issued.token)
        channels: List[str] = []
        try:
            channels = self.notifier.send(
                email=email,
                phone=phone,
                url=consent_url,
                case_number=case.case_number,
                recipient_name=case.opposite_party_name,
            ) or []
        except Exception as e:
            logger.warning(f"Case {case.case_number}: opposite party notification failed: {e}")

        return NotifyResult(
            case=case,
            consent_url=consent_url,
            expires_at=expires_at,
            delivered=bool(channels),
            channels=list(channels),
        )
