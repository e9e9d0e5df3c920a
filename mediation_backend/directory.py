"""
User Directory
==============

Resolves user ids to accounts and roles, and lists accounts by role.
Used by the panel service to check panel eligibility and by the admin API
to offer panel candidates.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List

from sqlalchemy.orm import Session

from .db.models import User, UserRole

PANEL_ELIGIBLE_ROLES = frozenset({UserRole.PANEL_MEMBER})


@dataclass(frozen=True)
class DirectoryEntry:
    """Resolved account"""
    user_id: str
    name: str
    email: str
    role: UserRole

    @property
    def is_panel_eligible(self) -> bool:
        return self.role in PANEL_ELIGIBLE_ROLES


def _entry(user: User) -> DirectoryEntry:
    return DirectoryEntry(user_id=user.id, name=user.name, email=user.email, role=user.role)


class UserDirectory:
    """Directory backed by the users table"""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, user_ids: Iterable[str]) -> Dict[str, DirectoryEntry]:
        """
        Resolve ids to active accounts.

        Ids with no active account are absent from the result.
        """
        ids = [uid for uid in set(user_ids) if uid]
        if not ids:
            return {}
        users = self.db.query(User).filter(User.id.in_(ids), User.is_active == True).all()  # noqa: E712
        return {u.id: _entry(u) for u in users}

    def list_by_role(self, role: UserRole) -> List[DirectoryEntry]:
        users = (
            self.db.query(User)
            .filter(User.role == role, User.is_active == True)  # noqa: E712
            .order_by(User.name)
            .all()
        )
        return [_entry(u) for u in users]
