"""
Domain Errors
=============

Caller-visible failures raised by the lifecycle, panel and consent services.

Each error carries:
- code: stable snake_case kind used in API payloads
- status_code: HTTP status the API layer renders it with
- public_message: short message safe to show to an unauthenticated caller

Placed in a separate module so services, routers and tests share one
taxonomy without importing the FastAPI app.
"""

from typing import Any, Dict, Optional


class MediationError(Exception):
    """Base class for recoverable, caller-visible failures"""
    code = "error"
    status_code = 400
    public_message = "request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.public_message
        self.details = details
        super().__init__(self.message)


class NotFoundError(MediationError):
    """Referenced case, panel or witness does not exist"""
    code = "not_found"
    status_code = 404
    public_message = "not found"


class InvalidStatusError(MediationError):
    """Requested status is not a recognized lifecycle state"""
    code = "invalid_status"
    status_code = 400
    public_message = "invalid status"


class InvalidTransitionError(MediationError):
    """Requested status is not reachable from the current status"""
    code = "invalid_transition"
    status_code = 409
    public_message = "invalid transition"


class InvalidStateError(MediationError):
    """Operation attempted outside its allowed status window"""
    code = "invalid_state"
    status_code = 409
    public_message = "operation not allowed in current case status"


class ValidationError(MediationError):
    """Structurally invalid input"""
    code = "validation_error"
    status_code = 422
    public_message = "validation failed"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.field = field
        if field and details is None:
            details = {"field": field}
        super().__init__(message, details)


class ConflictError(MediationError):
    """Operation would violate a uniqueness invariant"""
    code = "conflict"
    status_code = 409
    public_message = "conflict"


class MissingContactError(MediationError):
    """Opposite party has neither email nor phone"""
    code = "missing_contact"
    status_code = 400
    public_message = "opposite party has no email or phone"


class PermissionDeniedError(MediationError):
    """Caller lacks the role or ownership the operation requires"""
    code = "forbidden"
    status_code = 403
    public_message = "access denied"


# =============================================================================
# CONSENT TOKEN ERRORS
# =============================================================================

class ConsentTokenError(MediationError):
    """Base class for consent link failures"""
    code = "invalid_token"
    public_message = "invalid token"


class BadFormatError(ConsentTokenError):
    """Token does not have the expected four fields"""
    code = "bad_format"


class BadSignatureError(ConsentTokenError):
    """Token signature does not match its claimed fields"""
    code = "bad_signature"


class MismatchError(ConsentTokenError):
    """Token is valid but is not the one currently stored on the case"""
    code = "mismatch"


class ExpiredError(ConsentTokenError):
    """Token (or the stored consent record) is past its expiry"""
    code = "expired"
    status_code = 410
    public_message = "expired"


class AlreadyRespondedError(ConsentTokenError):
    """Consent has already been answered for this case"""
    code = "already_responded"
    status_code = 409
    public_message = "already responded"


class InvalidActionError(ConsentTokenError):
    """Consent action is neither accept nor decline"""
    code = "invalid_action"
    public_message = "invalid action"


# =============================================================================
# FATAL
# =============================================================================

class PanelPersistenceError(MediationError):
    """
    Panel creation could not be persisted together with the case update.

    Logged at critical level; operators should reconcile the case manually.
    """
    code = "panel_persistence_failed"
    status_code = 500
    public_message = "internal error"
