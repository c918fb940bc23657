from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List
from notscared.database import get_db
from notscared.dependencies import get_current_user
from notscared.events import ActivityEntry, list_events
from notscared.exceptions import ProjectConflict, ProjectError
from notscared.models import Project, User
from notscared.schemas import (
    MembersChangeResponse,
    MembersRequest,
    MemberResponse,
    MessageResponse,
    ProjectCreateRequest,
    ProjectResponse,
    ProjectUpdateRequest,
)
from notscared import projects

router = APIRouter(prefix="/projects", tags=["projects"], dependencies=[Depends(get_current_user)])


def _project_out(db: Session, project: Project) -> ProjectResponse:
    members = projects.get_project_members(db, project)
    return ProjectResponse(
        id=project.id,
        name=project.name,
        description=project.description,
        state=project.state,
        stage=project.stage,
        priority=project.priority,
        created_by=project.created_by,
        created_at=project.created_at,
        updated_at=project.updated_at,
        members=[MemberResponse.model_validate(m) for m in members],
    )


def _get_project_or_404(db: Session, name: str) -> Project:
    project = projects.get_project_by_name(db, name)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return project


def _rejected(e: ProjectError) -> HTTPException:
    if isinstance(e, ProjectConflict):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.get("", response_model=List[ProjectResponse])
async def list_projects(db: Session = Depends(get_db)):
    return [_project_out(db, p) for p in projects.list_projects(db)]


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        project = projects.create_project(
            db, user, body.name, stage=body.stage, priority=body.priority, member_ids=body.members
        )
    except ProjectError as e:
        raise _rejected(e)
    return _project_out(db, project)


@router.get("/{name}", response_model=ProjectResponse)
async def get_project(name: str, db: Session = Depends(get_db)):
    return _project_out(db, _get_project_or_404(db, name))


@router.patch("/{name}", response_model=ProjectResponse)
async def update_project(
    name: str,
    body: ProjectUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Apply the fields present in the body in one transaction. Each changed
    field logs its own event; a rejected field leaves the project untouched.
    """
    project = _get_project_or_404(db, name)
    changes = {field: getattr(body, field) for field in body.model_fields_set}

    try:
        projects.update_project(db, user, project, changes)
    except ProjectError as e:
        raise _rejected(e)

    return _project_out(db, project)


@router.put("/{name}/members", response_model=MembersChangeResponse)
async def set_members(
    name: str,
    body: MembersRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    project = _get_project_or_404(db, name)
    try:
        added, removed = projects.set_members(db, user, project, body.members)
    except ProjectError as e:
        raise _rejected(e)
    return MembersChangeResponse(added=added, removed=removed)


@router.delete("/{name}", response_model=MessageResponse)
async def delete_project(
    name: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    project = _get_project_or_404(db, name)
    projects.delete_project(db, user, project)
    return MessageResponse(message=f"Deleted project {name}")


@router.get("/{name}/events", response_model=List[ActivityEntry])
async def project_activity(
    name: str,
    limit: int = Query(5, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Recent activity for one project (default 5 entries)."""
    project = _get_project_or_404(db, name)
    return list_events(db, project_id=project.id, limit=limit)
