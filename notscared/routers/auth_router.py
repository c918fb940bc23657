from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from sqlalchemy.orm import Session
from typing import Optional
from notscared import auth
from notscared.database import get_db
from notscared.dependencies import get_current_user, get_session_token
from notscared.exceptions import AuthenticationError, InviteError, RegistrationError
from notscared.invites import check_invite, get_invite_by_code
from notscared.models import User
from notscared.schemas import (
    InviteStatusResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserResponse,
)
from notscared.users import register_user

router = APIRouter(prefix="/auth", tags=["auth"])


def _cookie_secure(request: Request) -> bool:
    return request.app.state.settings.cookie_secure


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Create an account with an invite code and log it in.

    Error cases:
    - 400: Invite code missing, unknown, inactive or used up
    - 409: Email or username already taken
    - 422: Validation failed (caught by FastAPI)
    """
    try:
        user = register_user(db, body.email, body.username, body.password, body.invite_code)
    except InviteError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    session = auth.create_session(db, user.id)
    auth.set_session_cookie(response, session.id, secure=_cookie_secure(request))

    return user


@router.post("/login", response_model=UserResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and create session.

    Generic error message: never reveals whether email or password was wrong.
    """
    try:
        session = auth.login(db, body.email, body.password)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message
        )

    auth.set_session_cookie(response, session.id, secure=_cookie_secure(request))
    return session.user


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db)
):
    """
    Invalidate session and clear cookie.

    Returns success even if session doesn't exist (idempotent).
    """
    if token:
        auth.destroy_session(db, token)

    auth.clear_session_cookie(response, secure=_cookie_secure(request))

    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(user: User = Depends(get_current_user)):
    return user


@router.get("/invites/{code}", response_model=InviteStatusResponse)
async def get_invite_status(code: str, db: Session = Depends(get_db)):
    """
    Check whether an invite code can still be used to register.

    Never consumes the invite; registration does that.
    """
    try:
        invite = check_invite(get_invite_by_code(db, code))
    except InviteError as e:
        return InviteStatusResponse(code=code.upper(), valid=False, error=e.message)
    return InviteStatusResponse(code=invite.code, valid=True)
