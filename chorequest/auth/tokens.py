"""
Signed bearer tokens.

Token format: ``<user_id>.<issued_at>.<signature>`` where the signature
is the hex HMAC-SHA256 of ``<user_id>.<issued_at>`` keyed with the
application secret. Issuing tokens belongs to the external auth
provider; ``create_access_token`` exists for tooling and tests.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Optional

import structlog

from chorequest.core.config import settings
from chorequest.core.exceptions import AuthenticationError

logger = structlog.get_logger(__name__)


@dataclass
class AccessToken:
    """Verified token payload."""
    user_id: str
    issued_at: int

    def is_expired(self, max_age_hours: int) -> bool:
        return (int(time.time()) - self.issued_at) > max_age_hours * 3600


class TokenAuth:
    """Creates and validates HMAC-signed access tokens."""

    def __init__(self, secret_key: str, max_age_hours: int = 24 * 7):
        self.secret_key = secret_key
        self.max_age_hours = max_age_hours

    def _sign(self, payload: str) -> str:
        return hmac.new(
            self.secret_key.encode(),
            payload.encode(),
            hashlib.sha256
        ).hexdigest()

    def create_token(self, user_id: str, issued_at: Optional[int] = None) -> str:
        issued_at = int(time.time()) if issued_at is None else issued_at
        payload = f"{user_id}.{issued_at}"
        return f"{payload}.{self._sign(payload)}"

    def verify_token(self, token: str) -> AccessToken:
        """
        Validate a token and return its payload.

        Raises:
            AuthenticationError: malformed, badly signed or expired token
        """
        parts = token.strip().split(".") if token else []
        if len(parts) != 3 or not all(parts):
            raise AuthenticationError("Malformed access token")

        user_id, issued_raw, signature = parts
        if not hmac.compare_digest(self._sign(f"{user_id}.{issued_raw}"), signature):
            logger.warning("Invalid token signature", user_id=user_id)
            raise AuthenticationError("Invalid access token signature")

        try:
            issued_at = int(issued_raw)
        except ValueError:
            raise AuthenticationError("Malformed access token")

        access_token = AccessToken(user_id=user_id, issued_at=issued_at)
        if access_token.is_expired(self.max_age_hours):
            raise AuthenticationError(
                f"Access token expired (older than {self.max_age_hours} hours)"
            )
        return access_token


def _default_auth() -> TokenAuth:
    return TokenAuth(settings.secret_key, settings.access_token_max_age_hours)


def create_access_token(user_id: str, issued_at: Optional[int] = None) -> str:
    """Create a signed token for ``user_id`` using the configured secret."""
    return _default_auth().create_token(user_id, issued_at)


def verify_access_token(token: str) -> AccessToken:
    """Verify a token using the configured secret."""
    return _default_auth().verify_token(token)
