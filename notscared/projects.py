"""
Project mutations.

Every change and the audit event describing it are committed in the
same transaction: if the event fails validation or the insert fails,
the change is rolled back as well. Setting a field to its current value
is a no-op and logs nothing.
"""
from contextlib import contextmanager
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from notscared.config_values import PROJECT_PRIORITY, PROJECT_STAGE, allowed_values
from notscared.events import EventType, log_event
from notscared.exceptions import ProjectConflict, ProjectError
from notscared.models import Project, ProjectMember, User, utcnow

DEFAULT_STAGE = "idea"


@contextmanager
def _transaction(db: Session):
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ProjectError("Name is required")
    return cleaned


def _check_name_free(db: Session, name: str):
    if get_project_by_name(db, name) is not None:
        raise ProjectConflict("A project with this name already exists")


def _check_config_value(db: Session, config_type: str, value: str):
    # Unconfigured types accept any value
    allowed = allowed_values(db, config_type)
    if allowed and value not in allowed:
        label = "stage" if config_type == PROJECT_STAGE else "priority"
        raise ProjectError(f"Unknown {label}: {value}")


def _check_users_exist(db: Session, user_ids: List[str]):
    if not user_ids:
        return
    found = {row[0] for row in db.query(User.id).filter(User.id.in_(user_ids)).all()}
    unknown = [user_id for user_id in user_ids if user_id not in found]
    if unknown:
        raise ProjectError(f"Unknown user: {', '.join(unknown)}")


def _unique(ids: Iterable[str]) -> List[str]:
    seen = []
    for item in ids:
        if item and item not in seen:
            seen.append(item)
    return seen


def get_project_by_name(db: Session, name: str) -> Optional[Project]:
    return db.query(Project).filter(Project.name == name).first()


def get_project(db: Session, project_id: str) -> Optional[Project]:
    return db.get(Project, project_id)


def list_projects(db: Session) -> List[Project]:
    """All projects, most recently updated first."""
    return db.query(Project).order_by(Project.updated_at.desc()).all()


def get_project_members(db: Session, project: Project) -> List[User]:
    return (
        db.query(User)
        .join(ProjectMember, ProjectMember.user_id == User.id)
        .filter(ProjectMember.project_id == project.id)
        .order_by(User.username)
        .all()
    )


def create_project(
    db: Session,
    actor: User,
    name: str,
    stage: Optional[str] = None,
    priority: Optional[str] = None,
    member_ids: Iterable[str] = (),
) -> Project:
    name = _clean_name(name)
    _check_name_free(db, name)

    stage = stage or DEFAULT_STAGE
    priority = priority or None
    _check_config_value(db, PROJECT_STAGE, stage)
    if priority is not None:
        _check_config_value(db, PROJECT_PRIORITY, priority)

    member_ids = _unique(member_ids)
    _check_users_exist(db, member_ids)

    now = utcnow()
    with _transaction(db):
        project = Project(
            name=name,
            stage=stage,
            priority=priority,
            created_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        db.add(project)
        db.flush()
        for user_id in member_ids:
            db.add(ProjectMember(project_id=project.id, user_id=user_id, created_at=now))
        log_event(db, EventType.PROJECT_CREATED, actor.id, {}, project_id=project.id, commit=False)

    db.refresh(project)
    logger.info("{} created project {}", actor.username, project.name)
    return project


def _apply_name(db: Session, actor: User, project: Project, new_name: str) -> bool:
    new_name = _clean_name(new_name)
    if new_name == project.name:
        return False
    _check_name_free(db, new_name)

    old_name = project.name
    project.name = new_name
    project.updated_at = utcnow()
    log_event(
        db, EventType.PROJECT_NAME_CHANGED, actor.id,
        {"from": old_name, "to": new_name}, project_id=project.id, commit=False,
    )
    return True


def _apply_stage(db: Session, actor: User, project: Project, stage: str) -> bool:
    if not stage:
        raise ProjectError("Stage is required")
    if stage == project.stage:
        return False
    _check_config_value(db, PROJECT_STAGE, stage)

    old_stage = project.stage
    project.stage = stage
    project.updated_at = utcnow()
    log_event(
        db, EventType.PROJECT_STAGE_CHANGED, actor.id,
        {"from": old_stage, "to": stage}, project_id=project.id, commit=False,
    )
    return True


def _apply_priority(db: Session, actor: User, project: Project, priority: Optional[str]) -> bool:
    # Empty string and None both clear the priority
    priority = priority or None
    if priority == project.priority:
        return False
    if priority is not None:
        _check_config_value(db, PROJECT_PRIORITY, priority)

    old_priority = project.priority
    project.priority = priority
    project.updated_at = utcnow()
    log_event(
        db, EventType.PROJECT_PRIORITY_CHANGED, actor.id,
        {"from": old_priority, "to": priority}, project_id=project.id, commit=False,
    )
    return True


def _apply_state(db: Session, actor: User, project: Project, state: Optional[str]) -> bool:
    state = state or None
    if state == project.state:
        return False

    project.state = state
    project.updated_at = utcnow()
    log_event(db, EventType.PROJECT_STATUS_UPDATED, actor.id, {}, project_id=project.id, commit=False)
    return True


def _apply_description(db: Session, actor: User, project: Project, description: Optional[str]) -> bool:
    description = description or None
    if description == project.description:
        return False

    project.description = description
    project.updated_at = utcnow()
    log_event(db, EventType.PROJECT_DESCRIPTION_UPDATED, actor.id, {}, project_id=project.id, commit=False)
    return True


# Field name -> change function, in the order a multi-field update applies them
FIELD_CHANGES = {
    "name": _apply_name,
    "stage": _apply_stage,
    "priority": _apply_priority,
    "state": _apply_state,
    "description": _apply_description,
}


def rename_project(db: Session, actor: User, project: Project, new_name: str) -> Project:
    old_name = project.name
    with _transaction(db):
        changed = _apply_name(db, actor, project, new_name)

    if changed:
        logger.info("{} renamed project {} to {}", actor.username, old_name, project.name)
    return project


def change_stage(db: Session, actor: User, project: Project, stage: str) -> Project:
    with _transaction(db):
        _apply_stage(db, actor, project, stage)
    return project


def change_priority(db: Session, actor: User, project: Project, priority: Optional[str]) -> Project:
    """Empty string and None both clear the priority."""
    with _transaction(db):
        _apply_priority(db, actor, project, priority)
    return project


def update_status(db: Session, actor: User, project: Project, state: Optional[str]) -> Project:
    with _transaction(db):
        _apply_state(db, actor, project, state)
    return project


def update_description(db: Session, actor: User, project: Project, description: Optional[str]) -> Project:
    with _transaction(db):
        _apply_description(db, actor, project, description)
    return project


def update_project(db: Session, actor: User, project: Project, changes: Mapping[str, Any]) -> List[str]:
    """
    Apply several field changes as one unit.

    Fields are applied in FIELD_CHANGES order, each logging its own event.
    If any field is rejected, none of the changes or events are kept.
    Returns the names of the fields that actually changed.
    """
    unknown = [field for field in changes if field not in FIELD_CHANGES]
    if unknown:
        raise ProjectError(f"Unknown field: {', '.join(unknown)}")

    changed = []
    with _transaction(db):
        for field, apply_change in FIELD_CHANGES.items():
            if field in changes and apply_change(db, actor, project, changes[field]):
                changed.append(field)

    if changed:
        logger.info("{} updated {} of project {}", actor.username, ", ".join(changed), project.name)
    return changed


def set_members(db: Session, actor: User, project: Project, member_ids: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Replace the member set of a project.

    Only the difference is written (new rows for added users, deletes for
    removed ones), in one transaction together with the event. Returns
    (added, removed); both empty means nothing changed and nothing was
    logged.
    """
    wanted = _unique(member_ids)
    _check_users_exist(db, wanted)

    current = [
        row[0] for row in
        db.query(ProjectMember.user_id)
        .filter(ProjectMember.project_id == project.id)
        .order_by(ProjectMember.created_at)
        .all()
    ]
    added = [user_id for user_id in wanted if user_id not in current]
    removed = [user_id for user_id in current if user_id not in wanted]

    if not added and not removed:
        return added, removed

    now = utcnow()
    with _transaction(db):
        if removed:
            db.query(ProjectMember).filter(
                ProjectMember.project_id == project.id,
                ProjectMember.user_id.in_(removed),
            ).delete(synchronize_session=False)
        for user_id in added:
            db.add(ProjectMember(project_id=project.id, user_id=user_id, created_at=now))
        project.updated_at = now
        log_event(
            db, EventType.PROJECT_MEMBERS_CHANGED, actor.id,
            {"added": added, "removed": removed}, project_id=project.id, commit=False,
        )

    db.expire(project, ["members"])
    logger.info("{} changed members of {} (+{} -{})", actor.username, project.name, len(added), len(removed))
    return added, removed


def delete_project(db: Session, actor: User, project: Project):
    """
    Delete a project with its memberships and project-scoped events.

    The deletion event keeps the name and is not attached to the project,
    so it survives the cascade and stays in the global feed.
    """
    name = project.name
    with _transaction(db):
        log_event(db, EventType.PROJECT_DELETED, actor.id, {"name": name}, commit=False)
        db.delete(project)

    logger.info("{} deleted project {}", actor.username, name)
