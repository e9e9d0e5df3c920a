"""
SQLAlchemy Models for Database
==============================

Schema for dispute mediation case management including:
- Users with platform roles (user, admin, panel member)
- Cases with embedded witnesses, documents and consent record
- Three-member mediation panels
- Case audit events
- Per-year case number sequences

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, Enum, ForeignKey,
    UniqueConstraint, Index, JSON
)
from sqlalchemy.orm import relationship, declarative_base

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
# PostgreSQL will use native JSONB, SQLite will use TEXT with JSON serialization
JSONB = JSON

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, enum.Enum):
    """Platform roles"""
    USER = "user"
    ADMIN = "admin"
    PANEL_MEMBER = "panel_member"


class CaseType(str, enum.Enum):
    """Dispute category"""
    FAMILY = "family"
    BUSINESS = "business"
    CRIMINAL = "criminal"
    CIVIL = "civil"
    OTHER = "other"


class CaseStatus(str, enum.Enum):
    """Case lifecycle status, in workflow order"""
    REGISTERED = "registered"
    UNDER_REVIEW = "under_review"
    AWAITING_RESPONSE = "awaiting_response"
    ACCEPTED = "accepted"
    WITNESS_NOMINATION = "witness_nomination"
    PANEL_FORMATION = "panel_formation"
    MEDIATION_IN_PROGRESS = "mediation_in_progress"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    CANCELLED = "cancelled"


class CasePriority(str, enum.Enum):
    """Triage priority"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class WitnessSide(str, enum.Enum):
    """Which party nominated the witness"""
    COMPLAINANT = "complainant"
    OPPOSITE = "opposite"


class DocumentFileType(str, enum.Enum):
    """Coarse media type of an uploaded document"""
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


class ConsentResponse(str, enum.Enum):
    """Opposite party's answer to the consent request"""
    ACCEPTED = "accepted"
    DECLINED = "declined"


class PanelRole(str, enum.Enum):
    """Seats on a mediation panel; each filled exactly once"""
    LAWYER = "lawyer"
    SCHOLAR = "scholar"
    COMMUNITY = "community"


class PanelStatus(str, enum.Enum):
    """Panel status"""
    CREATED = "created"
    ACTIVE = "active"


class EventType(str, enum.Enum):
    """Case audit event types"""
    CASE_CREATED = "case_created"
    CASE_UPDATED = "case_updated"
    CASE_STATUS_CHANGED = "case_status_changed"
    DOCUMENT_ADDED = "document_added"
    WITNESSES_ADDED = "witnesses_added"
    WITNESS_REMOVED = "witness_removed"
    CONSENT_ISSUED = "consent_issued"
    CONSENT_RESPONDED = "consent_responded"
    PANEL_CREATED = "panel_created"
    PANEL_ACTIVATED = "panel_activated"


# =============================================================================
# USERS
# =============================================================================

class User(Base):
    """Platform account"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(32), nullable=True)
    address = Column(JSONB, default=dict)  # {street, city, zip_code}
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    password_hash = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    cases = relationship("Case", back_populates="complainant", foreign_keys="Case.complainant_id")
    panel_seats = relationship("PanelMember", back_populates="user")


# =============================================================================
# CASE MANAGEMENT MODELS
# =============================================================================

class Case(Base):
    """
    Dispute case (aggregate root).

    Witnesses and document metadata are embedded JSON lists owned by the
    case. The consent record is embedded as the consent_* columns.
    """
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_number = Column(String(32), nullable=False, unique=True)
    case_type = Column(Enum(CaseType), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    complainant_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    # Opposite party (no account)
    opposite_party_name = Column(String(100), nullable=False)
    opposite_party_email = Column(String(255), nullable=True)
    opposite_party_phone = Column(String(32), nullable=True)
    opposite_party_address = Column(JSONB, default=dict)  # {street, city, zip_code}

    # Court pendency
    is_in_court = Column(Boolean, default=False, nullable=False)
    court_details = Column(JSONB, nullable=True)  # {case_number, court_name, fir_number, police_station}

    status = Column(Enum(CaseStatus), default=CaseStatus.REGISTERED, nullable=False)
    priority = Column(Enum(CasePriority), default=CasePriority.MEDIUM, nullable=False)
    notes = Column(Text, nullable=True)
    tags = Column(JSONB, default=list)

    documents = Column(JSONB, default=list)
    witnesses = Column(JSONB, default=list)

    # Set once by the panel service, never reassigned
    panel_id = Column(String(36), nullable=True, unique=True)

    # Opposite-party notification / consent record
    opposite_party_notified = Column(Boolean, default=False, nullable=False)
    opposite_party_notified_at = Column(DateTime, nullable=True)
    consent_token = Column(String(255), nullable=True)
    consent_expires_at = Column(DateTime, nullable=True)
    consent_responded_at = Column(DateTime, nullable=True)
    consent_response = Column(Enum(ConsentResponse), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_case_status_created", "status", "created_at"),
        Index("ix_case_complainant", "complainant_id", "created_at"),
    )

    # Stale concurrent writes fail instead of silently overwriting
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    complainant = relationship("User", back_populates="cases", foreign_keys=[complainant_id])
    panel = relationship("Panel", back_populates="case", uselist=False)
    events = relationship("CaseEvent", back_populates="case", cascade="all, delete-orphan",
                          order_by="CaseEvent.created_at")


class CaseNumberSequence(Base):
    """Last issued case number sequence per calendar year"""
    __tablename__ = "case_number_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# PANELS
# =============================================================================

class Panel(Base):
    """Three-member mediation panel, one per case"""
    __tablename__ = "panels"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True)
    status = Column(Enum(PanelStatus), default=PanelStatus.CREATED, nullable=False)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    activated_at = Column(DateTime, nullable=True)

    # Relationships
    case = relationship("Case", back_populates="panel")
    members = relationship("PanelMember", back_populates="panel", cascade="all, delete-orphan")


class PanelMember(Base):
    """Seat on a panel"""
    __tablename__ = "panel_members"

    panel_id = Column(String(36), ForeignKey("panels.id", ondelete="CASCADE"), primary_key=True)
    role = Column(Enum(PanelRole), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    __table_args__ = (
        UniqueConstraint("panel_id", "user_id", name="uq_panel_member_user"),
    )

    # Relationships
    panel = relationship("Panel", back_populates="members")
    user = relationship("User", back_populates="panel_seats")


# =============================================================================
# EVENTS
# =============================================================================

class CaseEvent(Base):
    """Audit trail entry for a case"""
    __tablename__ = "case_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(Enum(EventType), nullable=False)
    from_status = Column(String(32), nullable=True)
    to_status = Column(String(32), nullable=True)
    actor_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    related_ids_json = Column(JSONB, default=dict)  # {panel_id, witness_ids, ...}
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_case_event_case", "case_id", "created_at"),
    )

    # Relationships
    case = relationship("Case", back_populates="events")
