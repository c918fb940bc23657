from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
from notscared.auth import SESSION_COOKIE, resolve_session
from notscared.database import get_db
from notscared.models import User


def get_session_token(token: Optional[str] = Cookie(None, alias=SESSION_COOKIE)) -> Optional[str]:
    """Raw session token from the session cookie, if any."""
    return token or None


def get_optional_user(
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Authenticated user, or None for anonymous requests."""
    return resolve_session(db, token)


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """
    Require an authenticated user.

    Raises 401 when the cookie is missing, unknown or expired.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized"
        )
    return user
