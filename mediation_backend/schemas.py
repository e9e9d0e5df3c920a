"""
Pydantic Schemas for Mediation Backend
======================================

Request/response models for the HTTP API.

Lifecycle inputs (status, witness side, panel role, consent action) are
accepted as plain strings so the domain services can answer with their own
error kinds (invalid_status, validation_error, invalid_action) instead of a
generic request validation failure.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .db.models import CasePriority, CaseType, DocumentFileType

PHONE_RE = re.compile(r"^[+]?[\d\s\-\(\)]{10,}$")


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not PHONE_RE.match(value):
        raise ValueError("Please provide a valid phone number")
    return value


# =============================================================================
# CASES
# =============================================================================

class Address(BaseModel):
    street: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)


class OppositeParty(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[Address] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Opposite party name must be at least 2 characters")
        return v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class CourtDetails(BaseModel):
    case_number: Optional[str] = Field(None, max_length=100)
    court_name: Optional[str] = Field(None, max_length=200)
    fir_number: Optional[str] = Field(None, max_length=100)
    police_station: Optional[str] = Field(None, max_length=200)


class DocumentMetadata(BaseModel):
    """Metadata of a document stored elsewhere"""
    file_name: str = Field(..., min_length=1, max_length=255)
    original_name: str = Field(..., min_length=1, max_length=255)
    file_type: DocumentFileType
    file_size: int = Field(..., ge=0)


class CreateCaseRequest(BaseModel):
    """Request to register a dispute"""
    case_type: CaseType
    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=20, max_length=2000)
    opposite_party: OppositeParty
    is_in_court: bool = False
    court_details: Optional[CourtDetails] = None
    priority: CasePriority = CasePriority.MEDIUM
    notes: Optional[str] = Field(None, max_length=1000)
    tags: List[str] = Field(default_factory=list)
    documents: List[DocumentMetadata] = Field(default_factory=list)

    @field_validator("title", "description")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def _court_details_when_in_court(self):
        if self.is_in_court and self.court_details is None:
            raise ValueError("Court details are required when the case is in court")
        return self


class UpdateCaseRequest(BaseModel):
    """Editable descriptive fields; all optional"""
    case_type: Optional[CaseType] = None
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, min_length=20, max_length=2000)
    opposite_party: Optional[OppositeParty] = None
    is_in_court: Optional[bool] = None
    court_details: Optional[CourtDetails] = None
    priority: Optional[CasePriority] = None
    notes: Optional[str] = Field(None, max_length=1000)
    tags: Optional[List[str]] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_cases: int
    has_next_page: bool
    has_prev_page: bool


class CaseListResponse(BaseModel):
    cases: List[Dict[str, Any]]
    pagination: Pagination


# =============================================================================
# LIFECYCLE
# =============================================================================

class StatusUpdateRequest(BaseModel):
    status: str
    notes: Optional[str] = None


class WitnessInput(BaseModel):
    name: Optional[str] = None
    side: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    relation: Optional[str] = None


class AddWitnessesRequest(BaseModel):
    witnesses: List[WitnessInput]


class PanelMemberInput(BaseModel):
    user_id: str
    role: str


class CreatePanelRequest(BaseModel):
    members: List[PanelMemberInput]


class NotifyResponse(BaseModel):
    case_id: str
    case_number: str
    status: str
    consent_url: str
    expires_at: datetime
    delivered: bool
    channels: List[str] = Field(default_factory=list)


# =============================================================================
# PUBLIC CONSENT
# =============================================================================

class ConsentActionRequest(BaseModel):
    action: Optional[str] = None


class ConsentResponseOut(BaseModel):
    message: str
    case_number: str
    status: str
    response: str


# =============================================================================
# AUTH
# =============================================================================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=2, max_length=100)
    phone: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
