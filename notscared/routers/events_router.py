from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List
from notscared.config_values import CONFIG_TYPES, create_config_value, list_config_values
from notscared.database import get_db
from notscared.dependencies import get_current_user, require_admin
from notscared.events import ActivityEntry, list_events
from notscared.exceptions import ConfigValueError
from notscared.models import User
from notscared.schemas import ConfigValueRequest, ConfigValueResponse

router = APIRouter(tags=["activity"], dependencies=[Depends(get_current_user)])


@router.get("/events", response_model=List[ActivityEntry])
async def activity_feed(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Most recent events across all projects, newest first."""
    return list_events(db, limit=limit)


@router.get("/config/{config_type}", response_model=List[ConfigValueResponse])
async def get_config_values(config_type: str, db: Session = Depends(get_db)):
    if config_type not in CONFIG_TYPES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return list_config_values(db, config_type)


@router.post("/config/{config_type}", response_model=ConfigValueResponse, status_code=status.HTTP_201_CREATED)
async def add_config_value(
    config_type: str,
    body: ConfigValueRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return create_config_value(db, config_type, body.value, body.label, body.sort_order, body.color)
    except ConfigValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
