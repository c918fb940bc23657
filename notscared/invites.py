"""Invite codes: creation, lookup and bounded consumption."""
import secrets
from typing import Optional

from loguru import logger
from sqlalchemy import or_
from sqlalchemy.orm import Session

from notscared.models import InviteCode
from notscared.exceptions import InviteError

# Unambiguous upper-case alphabet for codes people type in by hand
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8


def generate_invite_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def create_invite_code(db: Session, user_id: str, max_uses: Optional[int] = None) -> InviteCode:
    """Create an active invite code owned by user_id. max_uses=None means unlimited."""
    if max_uses is not None and max_uses < 1:
        raise InviteError("max_uses must be at least 1")

    invite = InviteCode(
        code=generate_invite_code(),
        created_by=user_id,
        max_uses=max_uses,
        use_count=0,
        is_active=True,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)

    logger.info("User {} created invite code {} (max_uses={})", user_id, invite.code, max_uses)
    return invite


def get_invite_by_code(db: Session, code: str) -> Optional[InviteCode]:
    """Case-insensitive lookup. Returns None for unknown codes."""
    if not code:
        return None
    return db.query(InviteCode).filter(InviteCode.code == normalize_code(code)).first()


def is_exhausted(invite: InviteCode) -> bool:
    return invite.max_uses is not None and invite.use_count >= invite.max_uses


def check_invite(invite: Optional[InviteCode]) -> InviteCode:
    """Raise InviteError unless the invite can still be used."""
    if invite is None:
        raise InviteError("Invalid invite code")
    if not invite.is_active:
        raise InviteError("Invite code is no longer active")
    if is_exhausted(invite):
        raise InviteError("Invite code has reached its usage limit")
    return invite


def consume_invite(db: Session, invite: InviteCode) -> bool:
    """
    Count one use of the invite inside the caller's transaction.

    The increment is a single conditional UPDATE, so two registrations
    racing for the last use cannot both succeed. Returns False when the
    invite was deactivated or used up in the meantime. Does not commit.
    """
    updated = (
        db.query(InviteCode)
        .filter(
            InviteCode.id == invite.id,
            InviteCode.is_active.is_(True),
            or_(InviteCode.max_uses.is_(None), InviteCode.use_count < InviteCode.max_uses),
        )
        .update({InviteCode.use_count: InviteCode.use_count + 1}, synchronize_session=False)
    )
    return updated == 1


def deactivate_invite(db: Session, invite: InviteCode) -> InviteCode:
    invite.is_active = False
    db.commit()
    db.refresh(invite)
    return invite
