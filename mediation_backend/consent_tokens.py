"""
Consent Tokens
==============

Signed, expiring tokens that bind a case to an opposite-party consent action.

Token layout (plain, dot-delimited, tamper-evident only):

    <case_id>.<expires_at unix seconds>.<nonce hex>.<hmac-sha256 hex>

The signature is HMAC-SHA256 over "<case_id>.<expires_at>.<nonce>" keyed with
the server consent secret. Verification is a pure function of the token and
the secret; the copy stored on the case is only used for single-use checks
(see consent.py).
"""

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from .config import get_settings
from .errors import BadFormatError, BadSignatureError, ExpiredError

SECONDS_PER_DAY = 24 * 60 * 60
NONCE_BYTES = 8


@dataclass(frozen=True)
class IssuedToken:
    """A freshly issued consent token"""
    token: str
    case_id: str
    expires_at: int  # unix seconds


@dataclass(frozen=True)
class VerifiedToken:
    """Claims of a token whose signature and expiry checked out"""
    case_id: str
    expires_at: int


class ConsentTokenSigner:
    """Issues and verifies consent tokens with a fixed secret"""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Consent secret must not be empty")
        self._key = secret.encode("utf-8")

    def _sign(self, case_id: str, expires_at: str, nonce: str) -> str:
        message = f"{case_id}.{expires_at}.{nonce}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def issue(self, case_id: str, valid_days: int = 7, now: Optional[float] = None) -> IssuedToken:
        """
        Issue a token for a case.

        Args:
            case_id: Case the token binds to
            valid_days: Validity window in days
            now: Current unix time (defaults to time.time())

        Returns:
            IssuedToken with the token string and its expiry
        """
        if not case_id or "." in case_id:
            raise ValueError("case_id must be non-empty and must not contain '.'")

        current = time.time() if now is None else now
        expires_at = int(current) + valid_days * SECONDS_PER_DAY
        nonce = secrets.token_hex(NONCE_BYTES)
        signature = self._sign(case_id, str(expires_at), nonce)
        token = f"{case_id}.{expires_at}.{nonce}.{signature}"
        return IssuedToken(token=token, case_id=case_id, expires_at=expires_at)

    def verify(self, token: str, now: Optional[float] = None) -> VerifiedToken:
        """
        Verify a token.

        Raises:
            BadFormatError: token does not split into four non-empty fields
            BadSignatureError: signature does not match the claimed fields
            ExpiredError: current time is past the claimed expiry
        """
        parts = (token or "").split(".")
        if len(parts) != 4 or not all(parts):
            raise BadFormatError("Token must have four fields")

        case_id, expires_raw, nonce, signature = parts
        expected = self._sign(case_id, expires_raw, nonce)
        # Bytes compare; str compare_digest rejects non-ASCII input with TypeError
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8", "replace")):
            raise BadSignatureError("Token signature mismatch")

        try:
            expires_at = int(expires_raw)
        except ValueError:
            raise BadFormatError("Token expiry is not an integer")

        current = time.time() if now is None else now
        if current > expires_at:
            raise ExpiredError("Token has expired")

        return VerifiedToken(case_id=case_id, expires_at=expires_at)


@lru_cache()
def get_consent_signer() -> ConsentTokenSigner:
    """Process-wide signer, built once from settings"""
    return ConsentTokenSigner(get_settings().consent_secret)
