from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Iterable, Optional
import logging

from Login_module.Utils import security
from deps import get_db
from Login_module.User.user_crud import get_user_by_id
from Login_module.User.user_model import User, UserRole

logger = logging.getLogger(__name__)

# Missing headers are reported by get_current_user itself so the status is always 401
security_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Validates JWT token and returns the current authenticated user.
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    payload = security.decode_access_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token does not contain user info"
        )

    try:
        user = get_user_by_id(db, int(user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID format in token"
        )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


def has_role(user: Optional[User], allowed_roles: Iterable[str]) -> bool:
    """Role predicate used by every role-gated endpoint."""
    if user is None:
        return False
    allowed = {role.value if isinstance(role, UserRole) else role for role in allowed_roles}
    return user.role in allowed


def require_roles(*roles):
    """Dependency factory: the current user must hold one of the given roles."""
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_role(current_user, roles):
            logger.warning(f"User {current_user.id} with role {current_user.role} denied; requires {list(roles)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user
    return dependency


require_admin = require_roles(UserRole.ADMIN)


def resolve_token_user_id(token: Optional[str], allow_expired: bool = False) -> Optional[int]:
    """
    Best-effort identity lookup for endpoints that must not fail the client.
    Returns the user id embedded in a correctly signed token, or None.
    """
    if not token:
        return None
    payload, is_expired, is_invalid = security.decode_access_token_with_expiry_check(token)
    if is_invalid or not payload:
        return None
    if is_expired and not allow_expired:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.warning(f"Token payload has unusable subject: {payload.get('sub')!r}")
        return None


def pick_credential(
    credentials: Optional[HTTPAuthorizationCredentials],
    body_token: Optional[str]
) -> Optional[str]:
    """Body-embedded token wins (beacon posts cannot set headers), else the bearer header."""
    if body_token and body_token.strip():
        return body_token.strip()
    if credentials and credentials.credentials and credentials.credentials.strip():
        return credentials.credentials.strip()
    return None
