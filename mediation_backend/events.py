"""
Case Events
===========

Two kinds of events:
- Audit rows (CaseEvent) written in the same transaction as the change
- Live status-changed notifications pushed to in-process listeners
  (e.g. the /ws/cases websocket) after the change is committed

Listener failures are logged and never propagate to the caller.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from .db.models import Case, CaseEvent, CaseStatus, EventType

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


def record_event(
    db: Session,
    case: Case,
    event_type: EventType,
    actor_user_id: Optional[str] = None,
    from_status: Optional[CaseStatus] = None,
    to_status: Optional[CaseStatus] = None,
    related_ids: Optional[Dict[str, Any]] = None,
    note: Optional[str] = None,
) -> CaseEvent:
    """Add an audit row for a case; flushed with the caller's transaction"""
    event = CaseEvent(
        case=case,
        event_type=event_type,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value if to_status else None,
        actor_user_id=actor_user_id,
        related_ids_json=related_ids or {},
        note=note,
    )
    db.add(event)
    return event


def status_changed_payload(case: Case, from_status: CaseStatus, to_status: CaseStatus) -> Dict[str, Any]:
    return {
        "type": "case_status_changed",
        "case_id": case.id,
        "case_number": case.case_number,
        "from": from_status.value,
        "to": to_status.value,
        "at": datetime.utcnow().isoformat(),
    }


class StatusEventHub:
    """In-process observer registry for case status changes"""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, event: Dict[str, Any]) -> None:
        """Deliver an event to every listener; best-effort"""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Status event listener failed for case {event.get('case_id')}: {e}")


_hub = StatusEventHub()


def get_event_hub() -> StatusEventHub:
    return _hub
