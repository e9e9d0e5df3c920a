"""
Authorization Module with JWT Support
=====================================

Role-based access for the mediation platform.

Roles:
- user: registers disputes and manages their own cases
- admin: triages cases, drives the lifecycle, forms panels
- panel_member: eligible to sit on a mediation panel

Authorization Flow:
1. Load user from `Authorization: Bearer <jwt>`
2. Check the account is active
3. Routers check role (require_admin) or ownership (cases.py)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import User, UserRole
from .db.session import get_db

logger = logging.getLogger(__name__)


# =============================================================================
# PASSWORD HASHING
# =============================================================================

# bcrypt truncates passwords at 72 bytes; enforce to avoid 500s.
MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def is_password_too_long(password: str) -> bool:
    """Return True if password exceeds bcrypt 72-byte limit."""
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    if is_password_too_long(plain_password):
        logger.warning("Auth failed: password exceeds bcrypt 72-byte limit")
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"Auth failed: invalid password format ({e})")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password"""
    if is_password_too_long(password):
        raise ValueError("Password exceeds bcrypt 72-byte limit")
    return pwd_context.hash(password)


# =============================================================================
# JWT TOKEN HANDLING
# =============================================================================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token"""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None


def token_for_user(user: User) -> str:
    return create_access_token({"sub": user.id, "email": user.email, "role": user.role.value})


# =============================================================================
# AUTH CONTEXT
# =============================================================================

@dataclass
class AuthContext:
    """Authorization context for a request"""
    user_id: str
    email: str
    name: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_panel_member(self) -> bool:
        return self.role == UserRole.PANEL_MEMBER


# =============================================================================
# AUTH SERVICE (SQLAlchemy-based)
# =============================================================================

class AuthService:
    """Authorization service using SQLAlchemy"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _context(user: User) -> AuthContext:
        return AuthContext(user_id=user.id, email=user.email, name=user.name, role=user.role)

    def get_auth_context(self, user_id: str) -> Optional[AuthContext]:
        """
        Build auth context for a user.

        Returns:
            AuthContext if user exists and is active, None otherwise
        """
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            logger.warning(f"Auth failed: user {user_id} not found or inactive")
            return None
        return self._context(user)

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user by email and password.

        Returns:
            User if authentication succeeds, None otherwise
        """
        user = self.db.query(User).filter(User.email == email.lower(), User.is_active == True).first()  # noqa: E712
        if not user:
            logger.warning(f"Auth failed: email {email} not found")
            return None

        if not user.password_hash:
            logger.warning(f"Auth failed: user {user.id} has no password set")
            return None

        if not verify_password(password, user.password_hash):
            logger.warning(f"Auth failed: invalid password for user {user.id}")
            return None

        user.last_login = datetime.utcnow()
        self.db.commit()
        return user

    def register_user(self, email: str, password: str, name: str, phone: Optional[str] = None,
                      role: UserRole = UserRole.USER) -> Optional[User]:
        """
        Create an account.

        Returns:
            The new user, or None if the email is already registered
        """
        email = email.lower()
        if self.db.query(User).filter(User.email == email).first():
            return None

        user = User(
            email=email,
            name=name,
            phone=phone,
            role=role,
            password_hash=get_password_hash(password),
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Registered user {user.id} with role {role.value}")
        return user


def get_auth_service(db: Session) -> AuthService:
    return AuthService(db)


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> Optional[AuthContext]:
    """
    Get current user from `Authorization: Bearer <jwt>`.
    Returns None if no usable token was provided.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        return None

    token = authorization.split(" ", 1)[1].strip()
    payload = decode_token(token)
    if not payload or payload.get("type") != "access" or not payload.get("sub"):
        return None

    return get_auth_service(db).get_auth_context(payload["sub"])


async def require_auth(auth: Optional[AuthContext] = Depends(get_current_user)) -> AuthContext:
    """Require authenticated user"""
    if not auth:
        raise HTTPException(status_code=401, detail="Authentication required")
    return auth


async def require_admin(auth: AuthContext = Depends(require_auth)) -> AuthContext:
    """Require authenticated admin"""
    if not auth.is_admin:
        logger.warning(f"Permission denied: {auth.user_id} is not an admin")
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth
