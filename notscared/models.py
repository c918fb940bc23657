from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from notscared.database import Base
import secrets


def generate_id() -> str:
    """Random URL-safe identifier for primary keys (22 characters)."""
    return secrets.token_urlsafe(16)


def utcnow() -> datetime:
    """
    Current time as naive UTC.

    SQLite drops tzinfo on the way back out, so every timestamp the
    application stores or compares against is naive UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """
    Account that can log in, own sessions and act on projects.

    Design notes:
    - email and username are both unique and indexed for login/registration checks
    - password_hash never leaves the database layer
    - invited_by is a weak reference: the inviter may be deleted later
    - deleting a user cascades to its sessions
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    invited_by = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username})>"


class Session(Base):
    """
    Server-side session storage.

    Design notes:
    - id is the token stored in cookie (32 URL-safe random characters)
    - user_id foreign key with cascade deletion
    - expires_at indexed for the optional cleanup sweep

    Session lifecycle:
    1. Created on login
    2. Validated on each request against expires_at, deleted when found expired
    3. Deleted on logout or when the owning user is deleted
    """
    __tablename__ = "sessions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="sessions")

    def __repr__(self):
        return f"<Session(user_id={self.user_id}, expires_at={self.expires_at})>"


class InviteCode(Base):
    """
    Bounded-use credential that gates self-registration.

    code is stored upper-cased so lookups are case-insensitive.
    use_count never exceeds max_uses when max_uses is set; see
    invites.consume_invite for the conditional increment.
    """
    __tablename__ = "invite_codes"

    id = Column(String(32), primary_key=True, default=generate_id)
    code = Column(String(32), unique=True, nullable=False, index=True)
    created_by = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    max_uses = Column(Integer, nullable=True)
    use_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<InviteCode(code={self.code}, uses={self.use_count}/{self.max_uses})>"


class ConfigValue(Base):
    """Allowed value for a configurable project field (stage, priority)."""
    __tablename__ = "config_values"

    id = Column(String(32), primary_key=True, default=generate_id)
    type = Column(String(32), nullable=False, index=True)
    value = Column(String(64), nullable=False)
    label = Column(String(128), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    color = Column(String(32), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("type", "value", name="uq_config_value"),
    )


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    # Freeform writeup of current status
    state = Column(Text, nullable=True)
    stage = Column(String(64), nullable=False, default="idea")
    priority = Column(String(64), nullable=True)
    created_by = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    members = relationship("ProjectMember", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Project(id={self.id}, name={self.name})>"


class ProjectMember(Base):
    __tablename__ = "project_members"

    id = Column(String(32), primary_key=True, default=generate_id)
    project_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )


class Event(Base):
    """
    Immutable audit record of a single state change.

    metadata_json holds the JSON payload validated against the schema
    registered for `type` in notscared.events. The column is named
    "metadata" in the database; the attribute cannot be, since
    declarative models reserve that name.
    """
    __tablename__ = "events"

    id = Column(String(32), primary_key=True, default=generate_id)
    type = Column(String(64), nullable=False)
    # Events outlive their actor; the feed shows a missing actor as unknown
    actor_id = Column(String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    metadata_json = Column("metadata", Text, nullable=True)
    project_id = Column(String(32), ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Feed queries filter by project and order by recency
    __table_args__ = (
        Index("ix_events_project_created", "project_id", "created_at"),
    )

    def __repr__(self):
        return f"<Event(id={self.id}, type={self.type})>"
