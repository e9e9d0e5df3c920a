"""
Public Consent API
==================

Unauthenticated endpoints used by the opposite party through the link
they received:

- GET  /api/v1/public/consent/{token} - case summary for the consent page
- POST /api/v1/public/consent/{token} - answer with {"action": "accept"|"decline"}

Errors use the public taxonomy: invalid token, expired, already responded,
not found, invalid action.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .consent import ConsentService
from .db.models import ConsentResponse
from .db.session import get_db
from .schemas import ConsentActionRequest, ConsentResponseOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/public", tags=["Public"])

RESPONSE_MESSAGES = {
    ConsentResponse.ACCEPTED: "Thank you. You have agreed to mediation.",
    ConsentResponse.DECLINED: "Your response has been recorded. You have declined mediation.",
}


@router.get("/consent/{token}", summary="Get case summary for a consent link")
async def get_consent(token: str, db: Session = Depends(get_db)):
    details = ConsentService(db).get_consent_details(token)
    return {"message": "Consent request found", "case": details}


@router.post("/consent/{token}", response_model=ConsentResponseOut, summary="Answer a consent request")
async def post_consent(
    token: str,
    request: ConsentActionRequest,
    db: Session = Depends(get_db),
):
    case = ConsentService(db).respond(token, request.action)
    return ConsentResponseOut(
        message=RESPONSE_MESSAGES[case.consent_response],
        case_number=case.case_number,
        status=case.status.value,
        response=case.consent_response.value,
    )
