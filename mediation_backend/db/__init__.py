"""
Database Package - SQLAlchemy
=============================

Persistence layer for dispute mediation cases.
"""

from .models import (
    Base,
    User, Case, CaseNumberSequence, Panel, PanelMember, CaseEvent,
    UserRole, CaseType, CaseStatus, CasePriority, WitnessSide, DocumentFileType,
    ConsentResponse, PanelRole, PanelStatus, EventType,
)
from .session import get_db, get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Models
    "User", "Case", "CaseNumberSequence", "Panel", "PanelMember", "CaseEvent",
    # Enums
    "UserRole", "CaseType", "CaseStatus", "CasePriority", "WitnessSide", "DocumentFileType",
    "ConsentResponse", "PanelRole", "PanelStatus", "EventType",
    # Session
    "get_db", "get_db_session", "init_db", "get_engine", "reset_engine",
]
