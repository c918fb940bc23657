from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from notscared.database import get_db
from notscared.dependencies import get_current_user, require_admin
from notscared.exceptions import InviteError, PermissionDenied, RegistrationError
from notscared.invites import create_invite_code, deactivate_invite, get_invite_by_code
from notscared.models import User
from notscared.schemas import (
    CreateUserRequest,
    InviteCreateRequest,
    InviteResponse,
    MessageResponse,
    UserResponse,
)
from notscared import users

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserResponse])
async def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return users.list_users(db)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: CreateUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Create an account directly (admin only, no invite needed)."""
    try:
        return users.create_user(db, body.email, body.username, body.password, is_admin=body.is_admin)
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Delete a non-admin user. Their sessions and memberships go with them."""
    try:
        deleted = users.delete_user(db, admin, user_id)
    except PermissionDenied as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return MessageResponse(message="User deleted")


@router.post("/invites", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def create_invite(
    body: InviteCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return create_invite_code(db, current_user.id, body.max_uses)
    except InviteError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.delete("/invites/{code}", response_model=InviteResponse)
async def deactivate(
    code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Deactivate an invite. Allowed for its creator and for admins."""
    invite = get_invite_by_code(db, code)
    if invite is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invite code")
    if invite.created_by != current_user.id and not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
    return deactivate_invite(db, invite)
