"""
Audit events: a closed vocabulary of typed project changes.

Each event type has exactly one payload model. The payload model both
validates the metadata before it is stored and knows how to describe
itself for the activity feed. EVENT_SCHEMAS is built from the payload
classes and checked against EventType at import time, so adding a type
without a payload (or the reverse) fails immediately rather than at
display time.

Stored metadata is plain JSON keyed by the payload's field aliases
("from"/"to", "added"/"removed", "name"). That JSON shape is the
contract between old rows and new code: add fields with defaults,
never rename or drop them.
"""
import json
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy.orm import Session

from notscared.exceptions import EventValidationError
from notscared.models import Event, Project, User, utcnow

GENERIC_DESCRIPTION = "performed an action"


class EventType(str, Enum):
    PROJECT_CREATED = "project.created"
    PROJECT_DELETED = "project.deleted"
    PROJECT_NAME_CHANGED = "project.name_changed"
    PROJECT_STAGE_CHANGED = "project.stage_changed"
    PROJECT_PRIORITY_CHANGED = "project.priority_changed"
    PROJECT_STATUS_UPDATED = "project.status_updated"
    PROJECT_DESCRIPTION_UPDATED = "project.description_updated"
    PROJECT_MEMBERS_CHANGED = "project.members_changed"


class EventPayload(BaseModel):
    """Base for per-type metadata. Unknown keys are ignored, known keys are strictly typed."""
    model_config = ConfigDict(strict=True, populate_by_name=True, frozen=True)

    event_type: ClassVar[EventType]

    def describe(self) -> str:
        return GENERIC_DESCRIPTION


class ProjectCreated(EventPayload):
    event_type: ClassVar[EventType] = EventType.PROJECT_CREATED

    def describe(self) -> str:
        return "created this project"


class ProjectDeleted(EventPayload):
    """Carries the name because the project row is gone by the time anyone reads this."""
    event_type: ClassVar[EventType] = EventType.PROJECT_DELETED

    name: str

    def describe(self) -> str:
        return f'deleted project "{self.name}"'


class ProjectNameChanged(EventPayload):
    event_type: ClassVar[EventType] = EventType.PROJECT_NAME_CHANGED

    from_: str = Field(alias="from")
    to: str

    def describe(self) -> str:
        return f'renamed project from "{self.from_}" to "{self.to}"'


class ProjectStageChanged(EventPayload):
    event_type: ClassVar[EventType] = EventType.PROJECT_STAGE_CHANGED

    from_: str = Field(alias="from")
    to: str

    def describe(self) -> str:
        return f"changed stage from {self.from_} to {self.to}"


class ProjectPriorityChanged(EventPayload):
    event_type: ClassVar[EventType] = EventType.PROJECT_PRIORITY_CHANGED

    # Both keys are required; either may be null, not both
    from_: Optional[str] = Field(alias="from")
    to: Optional[str]

    @model_validator(mode="after")
    def _not_both_empty(self):
        if self.from_ is None and self.to is None:
            raise ValueError("from and to cannot both be null")
        return self

    def describe(self) -> str:
        if not self.from_ and self.to:
            return f"set priority to {self.to}"
        if self.from_ and not self.to:
            return "removed priority"
        return f"changed priority from {self.from_} to {self.to}"


class ProjectStatusUpdated(EventPayload):
    # The new status text itself is not logged
    event_type: ClassVar[EventType] = EventType.PROJECT_STATUS_UPDATED

    def describe(self) -> str:
        return "updated the status"


class ProjectDescriptionUpdated(EventPayload):
    event_type: ClassVar[EventType] = EventType.PROJECT_DESCRIPTION_UPDATED

    def describe(self) -> str:
        return "updated the description"


class ProjectMembersChanged(EventPayload):
    event_type: ClassVar[EventType] = EventType.PROJECT_MEMBERS_CHANGED

    added: List[str]
    removed: List[str]

    def describe(self) -> str:
        parts = []
        if self.added:
            parts.append(f"added {len(self.added)} member(s)")
        if self.removed:
            parts.append(f"removed {len(self.removed)} member(s)")
        return " and ".join(parts) or "updated members"


PAYLOAD_MODELS: List[Type[EventPayload]] = [
    ProjectCreated,
    ProjectDeleted,
    ProjectNameChanged,
    ProjectStageChanged,
    ProjectPriorityChanged,
    ProjectStatusUpdated,
    ProjectDescriptionUpdated,
    ProjectMembersChanged,
]

EVENT_SCHEMAS: Dict[EventType, Type[EventPayload]] = {model.event_type: model for model in PAYLOAD_MODELS}


def _check_registry():
    missing = set(EventType) - set(EVENT_SCHEMAS)
    if missing or len(EVENT_SCHEMAS) != len(PAYLOAD_MODELS):
        names = sorted(t.value for t in missing)
        raise RuntimeError(f"Event registry out of sync with EventType (missing: {names})")


_check_registry()


MetadataInput = Union[EventPayload, Mapping[str, Any]]


def _coerce_type(event_type: Union[EventType, str]) -> Optional[EventType]:
    try:
        return EventType(event_type)
    except ValueError:
        return None


def validate_metadata(event_type: Union[EventType, str], metadata: Optional[MetadataInput]) -> EventPayload:
    """
    Validate metadata against the schema registered for event_type.

    Raises EventValidationError for unknown types and for metadata that
    does not conform.
    """
    resolved = _coerce_type(event_type)
    if resolved is None:
        raise EventValidationError(str(event_type), [{"msg": "Unknown event type"}])

    schema = EVENT_SCHEMAS[resolved]
    if isinstance(metadata, EventPayload):
        if isinstance(metadata, schema):
            return metadata
        metadata = metadata.model_dump(by_alias=True)

    try:
        return schema.model_validate(metadata if metadata is not None else {})
    except ValidationError as e:
        raise EventValidationError(resolved.value, e.errors(include_url=False)) from e


def serialize_metadata(event_type: Union[EventType, str], metadata: Optional[MetadataInput]) -> str:
    """Validated metadata as the JSON text stored in events.metadata."""
    payload = validate_metadata(event_type, metadata)
    return json.dumps(payload.model_dump(by_alias=True), separators=(",", ":"))


def parse_event_metadata(event_type: Union[EventType, str], serialized: Optional[str]) -> Optional[EventPayload]:
    """
    Decode and re-validate stored metadata.

    Best effort for display: returns None instead of raising when the
    type is unknown, the JSON is malformed or the payload no longer
    matches its schema.
    """
    if not serialized:
        return None
    resolved = _coerce_type(event_type)
    if resolved is None:
        return None

    try:
        data = json.loads(serialized)
        return EVENT_SCHEMAS[resolved].model_validate(data)
    except (ValueError, ValidationError):
        return None


def format_event_description(event_type: Union[EventType, str], metadata: Optional[MetadataInput]) -> str:
    """
    Short present-tense clause for the activity feed, e.g.
    'changed stage from idea to active'.

    Never raises: unknown types and metadata that cannot be read fall
    back to a generic phrase.
    """
    resolved = _coerce_type(event_type)
    if resolved is None:
        return GENERIC_DESCRIPTION

    try:
        payload = validate_metadata(resolved, metadata)
    except EventValidationError:
        return GENERIC_DESCRIPTION
    return payload.describe()


def log_event(
    db: Session,
    event_type: Union[EventType, str],
    actor_id: str,
    metadata: Optional[MetadataInput] = None,
    project_id: Optional[str] = None,
    commit: bool = True,
) -> Event:
    """
    Validate and append an audit event.

    Raises EventValidationError before anything is written if the
    metadata does not match its schema. With commit=False the row is
    only flushed, so it lands in the same transaction as the change it
    describes and is rolled back with it.
    """
    serialized = serialize_metadata(event_type, metadata)

    event = Event(
        type=EventType(event_type).value,
        actor_id=actor_id,
        metadata_json=serialized,
        project_id=project_id,
        created_at=utcnow(),
    )
    db.add(event)
    if commit:
        db.commit()
        db.refresh(event)
    else:
        db.flush()

    logger.debug("Logged {} by {} (project={})", event.type, actor_id, project_id)
    return event


class ActivityEntry(BaseModel):
    """Event row joined with its actor and project, ready for display."""
    id: str
    type: str
    description: str
    created_at: datetime
    actor_id: Optional[str] = None
    actor_username: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


def list_events(db: Session, project_id: Optional[str] = None, limit: int = 50) -> List[ActivityEntry]:
    """Most recent events first, optionally limited to one project."""
    query = (
        db.query(Event, User.username, Project.name)
        .outerjoin(User, Event.actor_id == User.id)
        .outerjoin(Project, Event.project_id == Project.id)
    )
    if project_id is not None:
        query = query.filter(Event.project_id == project_id)

    rows = query.order_by(Event.created_at.desc()).limit(limit).all()

    entries = []
    for event, username, project_name in rows:
        payload = parse_event_metadata(event.type, event.metadata_json)
        entries.append(ActivityEntry(
            id=event.id,
            type=event.type,
            description=format_event_description(event.type, payload),
            created_at=event.created_at,
            actor_id=event.actor_id,
            actor_username=username,
            project_id=event.project_id,
            project_name=project_name,
            metadata=payload.model_dump(by_alias=True) if payload is not None else None,
        ))
    return entries
