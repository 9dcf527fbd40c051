import logging
import uuid
from datetime import timedelta
from typing import Dict

import bcrypt
from jose import JWTError, jwt

from kas.auth.schemas import MAX_PASSWORD_BYTES
from kas.core.clock import utcnow
from kas.core.config import settings
from kas.core.exceptions import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("sub", "username", "role")


def hash_password(plain_password: str) -> str:
    encoded = plain_password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    hashed = bcrypt.hashpw(encoded, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not password_hash:
        logger.warning("Empty stored password hash")
        return False
    encoded = plain_password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        # Could never have been hashed, so it cannot match
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash (corrupted or legacy format)
        logger.warning("Malformed stored password hash (prefix %r)", password_hash[:4])
        return False


def create_access_token(
    *, subject: Dict, expires_delta: timedelta
) -> str:
    """Sign the subject claims with an `iat` and an `exp` claim."""
    issued_at = utcnow()
    to_encode = subject.copy()
    to_encode.update(
        {
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + expires_delta).timestamp()),
        }
    )
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict:
    """Verify signature and expiry. Every failure collapses to AuthenticationError."""
    if not token:
        raise AuthenticationError()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.info("Rejected access token: %s", type(e).__name__)
        raise AuthenticationError() from e
    if any(not payload.get(claim) for claim in REQUIRED_CLAIMS):
        logger.info("Rejected access token: missing claims")
        raise AuthenticationError()
    return payload


def create_session_id() -> str:
    return str(uuid.uuid4())
