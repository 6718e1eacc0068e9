"""
Request-scoped dependencies: authenticated user and role checks.
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session
import logging

from keytao.core.db import get_db
from keytao.core.jwt import decode_token
from keytao.core.exceptions import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """Identity handed to services; services never read request state."""

    user_id: int
    is_admin: bool = False


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """
    Get the current authenticated user from the Authorization header.

    Raises:
        AuthenticationError: If the token is missing, invalid, or the user
            no longer exists or is disabled
    """
    from keytao.models.user import User, UserStatus

    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Missing or malformed authorization header")

    payload = decode_token(parts[1])
    if not payload or "sub" not in payload:
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")

    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if user.status != UserStatus.ENABLE:
        logger.warning(f"Rejected token for {user.status.value} user {user.id}")
        raise AuthenticationError("User account is disabled")

    request.state.user_id = user.id
    return user


def get_auth_context(user=Depends(get_current_user)) -> AuthContext:
    """Reduce the authenticated user to the identity services need."""
    return AuthContext(user_id=user.id, is_admin=user.is_admin)


def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Allow only administrators through."""
    if not auth.is_admin:
        raise PermissionDeniedError("Administrator role required")
    return auth
