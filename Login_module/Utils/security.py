from datetime import timedelta
from typing import Dict, Any, Optional, Tuple
import hashlib
import logging

import jwt
from fastapi import HTTPException, status

from config import settings
from Login_module.Utils.datetime_utils import now_ist

logger = logging.getLogger(__name__)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[int] = None) -> str:
    """
    Creates a JWT access token with expiration timestamp.
    """
    to_encode = data.copy()
    expire = now_ist() + timedelta(
        seconds=(expires_delta or settings.ACCESS_TOKEN_EXPIRE_SECONDS)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def hash_value(value: str) -> str:
    """
    Returns SHA256 hashed string of a given plain text.
    Used for hashing OTP codes at rest and the user-entered code during verification.
    """
    return hashlib.sha256(value.encode()).hexdigest()


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decodes and validates JWT access token.
    Raises HTTPException for invalid or expired tokens.
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def decode_access_token_with_expiry_check(token: str) -> Tuple[Optional[Dict[str, Any]], bool, bool]:
    """
    Decode a token without raising.

    Returns (payload, is_expired, is_invalid). An expired token whose signature
    still verifies yields its payload with is_expired=True, so callers that only
    need to know *who* the token belonged to (session-end auditing) can still
    use it. A bad signature or malformed token yields (None, False, True).
    """
    if not token:
        return None, False, True
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload, False, False
    except jwt.ExpiredSignatureError:
        try:
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.ALGORITHM],
                options={"verify_exp": False},
            )
            return payload, True, False
        except jwt.InvalidTokenError as e:
            logger.debug(f"Expired token failed re-verification: {e}")
            return None, True, True
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token rejected: {e}")
        return None, False, True
