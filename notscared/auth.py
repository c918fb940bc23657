from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError
from datetime import datetime, timedelta
from typing import Optional
from loguru import logger
from sqlalchemy.orm import Session
from starlette.requests import cookie_parser
from starlette.responses import Response
from notscared.models import User, Session as SessionModel, utcnow
from notscared.exceptions import AuthenticationError
import secrets

SESSION_COOKIE = "notscared_session"

# Fixed session lifetime; the cookie Max-Age always matches it
SESSION_TTL = timedelta(days=30)
SESSION_MAX_AGE = int(SESSION_TTL.total_seconds())

# Argon2id with library defaults
ph = PasswordHasher()


def hash_password(password: str) -> str:
    """
    Hash password using Argon2id.

    Returns hash string that includes algorithm parameters and salt.
    Format: $argon2id$v=19$m=65536,t=3,p=4$salt$hash
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored hash.

    Returns False for any verification error, including hashes
    that were not produced by argon2.
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def generate_session_id() -> str:
    """
    Generate cryptographically secure session identifier.

    24 random bytes, URL-safe base64 encoded = 32 character string.
    """
    return secrets.token_urlsafe(24)


def create_session(db: Session, user_id: str, now: Optional[datetime] = None) -> SessionModel:
    """
    Create new session for user.

    The returned session's id is the token to be stored in the cookie.
    Session expires SESSION_TTL after creation.
    """
    now = now or utcnow()
    session = SessionModel(
        id=generate_session_id(),
        user_id=user_id,
        expires_at=now + SESSION_TTL,
        created_at=now,
    )

    db.add(session)
    db.commit()
    db.refresh(session)

    logger.debug("Created session for user {}", user_id)
    return session


def get_session(db: Session, token: Optional[str], now: Optional[datetime] = None) -> Optional[SessionModel]:
    """
    Look up a live session by token.

    Returns None if the token is empty or unknown. An expired session
    is deleted on the spot and None returned; there is no background
    sweep on the request path.
    """
    if not token:
        return None

    session = db.get(SessionModel, token)
    if session is None:
        return None

    now = now or utcnow()
    if session.expires_at <= now:
        user_id = session.user_id
        db.delete(session)
        db.commit()
        logger.debug("Removed expired session for user {}", user_id)
        return None

    return session


def resolve_session(db: Session, token: Optional[str], now: Optional[datetime] = None) -> Optional[User]:
    """
    Validate session and retrieve associated user.

    Returns None if:
    - Session doesn't exist
    - Session is expired (and removes it)
    - User doesn't exist anymore
    """
    session = get_session(db, token, now)
    if session is None:
        return None

    return db.get(User, session.user_id)


def destroy_session(db: Session, token: str) -> None:
    """
    Delete session (logout).

    Idempotent: deleting an unknown token is not an error.
    """
    db.query(SessionModel).filter(SessionModel.id == token).delete()
    db.commit()


def delete_user_sessions(db: Session, user_id: str) -> int:
    """
    Delete all sessions for a user.

    Returns number of sessions deleted.
    """
    result = db.query(SessionModel).filter(
        SessionModel.user_id == user_id
    ).delete()

    db.commit()
    return result


def cleanup_expired_sessions(db: Session, now: Optional[datetime] = None) -> int:
    """
    Remove expired sessions from database.

    Independent of the request path, which only expires sessions lazily.
    Run from the CLI or a scheduler. Returns number of sessions removed.
    """
    now = now or utcnow()
    result = db.query(SessionModel).filter(
        SessionModel.expires_at <= now
    ).delete()

    db.commit()
    logger.info("Swept {} expired session(s)", result)
    return result


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    """Verify credentials and return user, or None."""
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def login(db: Session, email: str, password: str, now: Optional[datetime] = None) -> SessionModel:
    """
    Authenticate and open a session.

    Raises AuthenticationError with a generic message that does not
    reveal whether the email or the password was wrong.
    """
    user = authenticate(db, email, password)
    if user is None:
        logger.info("Rejected login for {}", email)
        raise AuthenticationError("Invalid email or password")

    return create_session(db, user.id, now)


def session_cookie_header(token: str) -> str:
    """Set-Cookie value carrying the session token."""
    return f"{SESSION_COOKIE}={token}; Path=/; HttpOnly; SameSite=Lax; Max-Age={SESSION_MAX_AGE}"


def clear_session_cookie_header() -> str:
    """Set-Cookie value that makes the browser drop the session cookie."""
    return f"{SESSION_COOKIE}=; Path=/; HttpOnly; SameSite=Lax; Max-Age=0"


def parse_session_cookie(cookie_header: Optional[str]) -> Optional[str]:
    """
    Extract the raw session token from a Cookie request header.

    Uses the same lenient parser as Starlette requests, so malformed
    cookies set by other applications on the host do not hide the token.
    """
    if not cookie_header:
        return None
    return cookie_parser(cookie_header).get(SESSION_COOKIE) or None


def set_session_cookie(response: Response, token: str, secure: bool = False):
    """
    Set session cookie with security flags.

    Cookie attributes:
    - httponly: Prevents JavaScript access (XSS protection)
    - samesite: Lax for CSRF protection while allowing normal navigation
    - max_age: matches SESSION_TTL
    - path: Cookie sent on all paths
    - secure: HTTPS only, enabled by configuration in production
    """
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=secure,
        samesite="lax",
        max_age=SESSION_MAX_AGE,
        path="/",
    )


def clear_session_cookie(response: Response, secure: bool = False):
    """
    Clear session cookie by setting it with max_age=0.
    """
    response.set_cookie(
        key=SESSION_COOKIE,
        value="",
        httponly=True,
        secure=secure,
        samesite="lax",
        max_age=0,
        path="/",
    )
