"""User accounts: admin creation, invite-gated registration, deletion."""
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notscared.auth import hash_password
from notscared.exceptions import InviteError, PermissionDenied, RegistrationError
from notscared.invites import check_invite, consume_invite, get_invite_by_code
from notscared.models import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username.strip()).first()


def list_users(db: Session) -> List[User]:
    """All users, newest first."""
    return db.query(User).order_by(User.created_at.desc()).all()


def _check_available(db: Session, email: str, username: str):
    if not email or not username:
        raise RegistrationError("All fields are required")
    if get_user_by_email(db, email):
        raise RegistrationError("Email already registered")
    if get_user_by_username(db, username):
        raise RegistrationError("Username already taken")


# A concurrent registration can still win the unique index between the
# availability check and the insert
def _flush_new_user(db: Session):
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise RegistrationError("Email or username already exists")


def _commit_new_user(db: Session, user: User) -> User:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise RegistrationError("Email or username already exists")
    db.refresh(user)
    return user


def create_user(
    db: Session,
    email: str,
    username: str,
    password: str,
    is_admin: bool = False,
    invited_by: Optional[str] = None,
) -> User:
    """
    Create a user directly, without an invite.

    Used by admins and the CLI. Raises RegistrationError when the email
    or username is already taken.
    """
    if not password:
        raise RegistrationError("All fields are required")
    _check_available(db, email, username)

    user = User(
        email=normalize_email(email),
        username=username.strip(),
        password_hash=hash_password(password),
        invited_by=invited_by,
        is_admin=is_admin,
    )
    db.add(user)
    user = _commit_new_user(db, user)

    logger.info("Created user {} ({}){}", user.username, user.email, " [admin]" if is_admin else "")
    return user


def register_user(db: Session, email: str, username: str, password: str, invite_code: Optional[str]) -> User:
    """
    Self-registration gated by an invite code.

    The new user row and the invite's use count are committed together.
    If the invite runs out between the check and the insert, nothing is
    written and InviteError is raised.
    """
    if not invite_code:
        raise InviteError("Invite code is required")

    invite = check_invite(get_invite_by_code(db, invite_code))
    if not password:
        raise RegistrationError("All fields are required")
    _check_available(db, email, username)

    user = User(
        email=normalize_email(email),
        username=username.strip(),
        password_hash=hash_password(password),
        invited_by=invite.created_by,
        is_admin=False,
    )
    db.add(user)
    _flush_new_user(db)

    if not consume_invite(db, invite):
        db.rollback()
        raise InviteError("Invite code has reached its usage limit")

    user = _commit_new_user(db, user)
    logger.info("Registered user {} with invite {}", user.username, invite.code)
    return user


def delete_user(db: Session, actor: User, user_id: str) -> bool:
    """
    Delete a user on behalf of an admin. Sessions and memberships cascade.

    Returns False if the user does not exist.
    """
    if not actor.is_admin:
        raise PermissionDenied("Unauthorized")
    if user_id == actor.id:
        raise PermissionDenied("Cannot delete yourself")

    target = db.get(User, user_id)
    if target is None:
        return False
    if target.is_admin:
        raise PermissionDenied("Cannot delete other admins")

    username = target.username
    db.delete(target)
    db.commit()

    logger.info("Admin {} deleted user {}", actor.username, username)
    return True
