"""
Domain exceptions.

Absence (no session, no user) is never an exception: lookups return None.
These cover the rejections a caller is expected to turn into a
human-readable message. Storage errors from SQLAlchemy are not wrapped.
"""

from typing import Optional, Any, Dict


class NotScaredError(Exception):
    """Base exception for all application-specific exceptions."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationError(NotScaredError):
    """Login rejected. The message never says which credential was wrong."""
    pass


class RegistrationError(NotScaredError):
    """User creation rejected (duplicate email/username, missing fields)."""
    pass


class InviteError(RegistrationError):
    """Invite code missing, unknown, inactive or used up."""
    pass


class PermissionDenied(NotScaredError):
    """Authenticated user lacks the rights for the action."""
    pass


class EventValidationError(NotScaredError):
    """Event metadata does not match the schema registered for its type."""

    def __init__(self, event_type: str, errors: Any):
        message = f"Invalid metadata for event {event_type}"
        super().__init__(message, {"event_type": event_type, "errors": errors})
        self.event_type = event_type
        self.errors = errors


class ProjectError(NotScaredError):
    """Project mutation rejected (missing or duplicate name, unknown stage)."""
    pass


class ProjectConflict(ProjectError):
    """Another project already uses the name."""
    pass


class ConfigValueError(NotScaredError):
    """Unknown config type or duplicate config value."""
    pass
