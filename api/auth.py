"""
Authentication for the FastAPI API: password hashing, bearer tokens and the
dependency that resolves the acting identity of a request.
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from catalog.errors import AuthenticationRequired
from catalog.models import Identity
from utilities.config import config

logger = structlog.get_logger(__name__)

PASSWORD_ITERATIONS = 260_000

# Missing credentials are reported by get_current_identity, not by the scheme
security = HTTPBearer(auto_error=False)


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """
    Hash a password with salted PBKDF2-HMAC-SHA256.

    Returns:
        String of the form `pbkdf2_sha256$<iterations>$<salt>$<hex digest>`
    """
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PASSWORD_ITERATIONS)
    return f"pbkdf2_sha256${PASSWORD_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a stored hash in constant time."""
    try:
        algorithm, iterations, salt, expected = hashed.split("$")
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    if algorithm != "pbkdf2_sha256" or rounds < 1:
        return False

    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), rounds)
    return hmac.compare_digest(digest.hex(), expected)


class TokenManager:
    """Issues and validates signed bearer tokens."""

    @staticmethod
    def _sign(payload: str) -> str:
        return hmac.new(config.secret_key.encode(), payload.encode(), hashlib.sha256).hexdigest()

    @staticmethod
    def create_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
        """
        Create a token for a user.

        Args:
            user_id: User identifier
            expires_minutes: Lifetime, defaults to the configured token lifetime

        Returns:
            Token of the form `user_id|expiry|signature`
        """
        minutes = expires_minutes or config.access_token_expire_minutes
        expiry = int((datetime.now(timezone.utc) + timedelta(minutes=minutes)).timestamp())
        payload = f"{user_id}|{expiry}"
        return f"{payload}|{TokenManager._sign(payload)}"

    @staticmethod
    def parse_token(token: str) -> Optional[str]:
        """
        Validate a token.

        Returns:
            The user id if the signature is valid and the token has not expired
        """
        try:
            user_id, expiry, signature = token.split("|")
        except ValueError:
            return None

        if not hmac.compare_digest(TokenManager._sign(f"{user_id}|{expiry}"), signature):
            return None
        try:
            if int(expiry) < int(datetime.now(timezone.utc).timestamp()):
                return None
        except ValueError:
            return None
        return user_id


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Identity:
    """
    Resolve the acting identity from the bearer token.

    Raises:
        AuthenticationRequired: If no token, an invalid token, or a token of a
            user that no longer exists is presented
    """
    if credentials is None:
        raise AuthenticationRequired()

    user_id = TokenManager.parse_token(credentials.credentials)
    if not user_id:
        logger.warning("Invalid or expired token presented")
        raise AuthenticationRequired("Invalid or expired token. Please log in again")

    from api.main import get_db_service

    identity = await get_db_service().get_identity(user_id)
    if identity is None:
        raise AuthenticationRequired("The user belonging to this token no longer exists")
    return identity
