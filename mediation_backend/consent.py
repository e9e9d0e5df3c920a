"""
Opposite-Party Consent
======================

Public, unauthenticated side of the consent protocol.

The token is authenticated by signature (consent_tokens.py). The copy stored
on the case enforces single use: it is cleared once a response is recorded,
and a newer link issued for the same case invalidates older ones.

Consent states: unset -> issued -> responded(accepted|declined).
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .consent_tokens import ConsentTokenSigner, get_consent_signer
from .db.models import Case, CaseStatus, ConsentResponse, EventType
from .errors import (
    AlreadyRespondedError,
    ExpiredError,
    InvalidActionError,
    MismatchError,
    NotFoundError,
)
from .events import StatusEventHub, record_event
from .lifecycle import CaseWorkflowService

logger = logging.getLogger(__name__)

ACTIONS = {
    "accept": ConsentResponse.ACCEPTED,
    "decline": ConsentResponse.DECLINED,
}


def parse_action(action: Any) -> ConsentResponse:
    if not isinstance(action, str) or action not in ACTIONS:
        raise InvalidActionError(f"Action must be 'accept' or 'decline', got {action!r}")
    return ACTIONS[action]


class ConsentService(CaseWorkflowService):
    """Consent link lookup and response"""

    def __init__(self, db: Session, signer: Optional[ConsentTokenSigner] = None,
                 hub: Optional[StatusEventHub] = None):
        super().__init__(db, hub=hub)
        self.signer = signer or get_consent_signer()

    def _load_for_token(self, token: str) -> Case:
        """
        Verify a token and load its case, enforcing the single-use rules.

        Raises:
            BadFormatError / BadSignatureError / ExpiredError: token itself invalid
            NotFoundError: case no longer exists
            AlreadyRespondedError: consent already answered
            MismatchError: a different link is current for the case
            ExpiredError: stored consent record expired
        """
        verified = self.signer.verify(token)

        case = self.db.query(Case).filter(Case.id == verified.case_id).first()
        if not case:
            raise NotFoundError("Case not found")

        if case.consent_responded_at is not None or case.consent_response is not None:
            raise AlreadyRespondedError("Consent has already been given for this case")

        if not case.consent_token or case.consent_token != token:
            raise MismatchError("This consent link is no longer valid")

        if case.consent_expires_at is None or datetime.utcnow() > case.consent_expires_at:
            raise ExpiredError("Consent link has expired")

        return case

    def get_consent_details(self, token: str) -> Dict[str, Any]:
        """Case summary shown to the opposite party before they answer"""
        case = self._load_for_token(token)
        return {
            "case_number": case.case_number,
            "case_type": case.case_type.value,
            "description": case.description,
            "opposite_party": {
                "name": case.opposite_party_name,
                "email": case.opposite_party_email,
                "phone": case.opposite_party_phone,
            },
            "expires_at": case.consent_expires_at.isoformat() if case.consent_expires_at else None,
        }

    def respond(self, token: str, action: Any) -> Case:
        """
        Record the opposite party's answer.

        accept: awaiting_response -> accepted
        decline: any status except resolved -> unresolved

        Raises:
            InvalidActionError: action is not accept/decline
            plus everything _load_for_token raises
        """
        response = parse_action(action)
        case = self._load_for_token(token)

        now = datetime.utcnow()
        case.consent_response = response
        case.consent_responded_at = now
        case.consent_token = None
        record_event(
            self.db, case, EventType.CONSENT_RESPONDED,
            related_ids={"response": response.value},
        )

        if response == ConsentResponse.ACCEPTED:
            if case.status == CaseStatus.AWAITING_RESPONSE:
                self._set_status(case, CaseStatus.ACCEPTED, None, note="Opposite party accepted mediation")
        elif case.status not in (CaseStatus.RESOLVED, CaseStatus.UNRESOLVED):
            self._set_status(case, CaseStatus.UNRESOLVED, None, note="Opposite party declined mediation")

        self._commit()
        self.db.refresh(case)
        logger.info(f"Case {case.case_number}: opposite party {response.value} mediation")
        self._publish_pending()
        return case
