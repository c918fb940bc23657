from pydantic import BaseModel, EmailStr, Field, field_validator, ConfigDict
from datetime import datetime
from typing import List, Optional


class RegisterRequest(BaseModel):
    """
    Self-registration payload. The invite code is checked by the service,
    which returns the human-readable reason when it is missing or unusable.
    """
    email: EmailStr
    username: str = Field(min_length=1, max_length=64)
    password: str
    invite_code: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        if len(v) > 128:
            raise ValueError('Password too long')
        return v


class CreateUserRequest(RegisterRequest):
    """Admin user creation. No invite involved."""
    is_admin: bool = False


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """
    Safe user representation for API responses.

    Never includes password_hash.
    """
    id: str
    email: str
    username: str
    is_admin: bool
    invited_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberResponse(BaseModel):
    id: str
    username: str

    model_config = ConfigDict(from_attributes=True)


class InviteCreateRequest(BaseModel):
    max_uses: Optional[int] = Field(default=None, ge=1)


class InviteResponse(BaseModel):
    code: str
    max_uses: Optional[int] = None
    use_count: int
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InviteStatusResponse(BaseModel):
    code: str
    valid: bool
    error: Optional[str] = None


class ConfigValueRequest(BaseModel):
    value: str = Field(min_length=1, max_length=64)
    label: str = Field(min_length=1, max_length=128)
    sort_order: int = 0
    color: Optional[str] = None


class ConfigValueResponse(BaseModel):
    value: str
    label: str
    sort_order: int
    color: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProjectCreateRequest(BaseModel):
    name: str
    stage: Optional[str] = None
    priority: Optional[str] = None
    members: List[str] = []


class ProjectUpdateRequest(BaseModel):
    """
    Partial update. Only fields present in the request body are applied;
    send null or "" to clear priority, status or description.
    """
    name: Optional[str] = None
    stage: Optional[str] = None
    priority: Optional[str] = None
    state: Optional[str] = None
    description: Optional[str] = None


class MembersRequest(BaseModel):
    members: List[str]


class MembersChangeResponse(BaseModel):
    added: List[str]
    removed: List[str]


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    state: Optional[str] = None
    stage: str
    priority: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    members: List[MemberResponse] = []


class MessageResponse(BaseModel):
    """
    Generic message response for operations without specific return data.
    """
    message: str
