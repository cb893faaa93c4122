"""
JWT token management.

Issues and validates the bearer access tokens that carry the authenticated
user identity into the API layer. Credential flows (registration, login,
password storage) live outside this service.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from jose import JWTError, jwt

from makoexpress.core.config import get_settings
from makoexpress.core.logging import get_logger

settings = get_settings()
logger = get_logger(__name__)


class SecurityError(Exception):
    """Base exception for security-related errors."""

    def __init__(self, message: str, code: str, **context):
        super().__init__(message)
        self.code = code
        self.context = context


class TokenError(SecurityError):
    """Exception raised for token-related errors."""

    pass


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token with expiration.

    Args:
        data: Dictionary of claims to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token({"sub": str(user.id), "role": "driver"})
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )

    to_encode.update({"exp": expire, "iat": now, "type": "access"})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )

    logger.debug(
        "Access token created",
        subject=data.get("sub"),
        expires_at=expire.isoformat(),
    )

    return encoded_jwt


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Raises:
        TokenError: If token is empty, invalid, expired, or malformed
    """
    if not token:
        logger.warning("Attempted to decode empty token")
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning("Token has expired", error=str(e))
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning(
            "Invalid token",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError("Invalid token", code="TOKEN_INVALID") from e

    if payload.get("type") != "access":
        raise TokenError("Unexpected token type", code="TOKEN_TYPE_INVALID")

    return payload


def get_token_user_id(token: str) -> UUID:
    """
    Extract the user ID carried in the token subject.

    Raises:
        TokenError: If the token is invalid or the subject is not a UUID
    """
    payload = decode_token(token)
    subject = payload.get("sub")
    if subject is None:
        raise TokenError("Token missing subject", code="TOKEN_NO_SUBJECT")
    try:
        return UUID(subject)
    except ValueError as e:
        raise TokenError(
            "Token subject is not a valid user ID",
            code="TOKEN_BAD_SUBJECT",
        ) from e
