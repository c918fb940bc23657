"""Configurable value lists for project stage and priority."""
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notscared.exceptions import ConfigValueError
from notscared.models import ConfigValue

PROJECT_STAGE = "project_stage"
PROJECT_PRIORITY = "project_priority"
CONFIG_TYPES = (PROJECT_STAGE, PROJECT_PRIORITY)

# (value, label, color)
DEFAULT_VALUES = {
    PROJECT_STAGE: [
        ("idea", "Idea", None),
        ("active", "Active", "green"),
        ("paused", "Paused", "amber"),
        ("done", "Done", None),
    ],
    PROJECT_PRIORITY: [
        ("low", "Low", "green"),
        ("medium", "Medium", "amber"),
        ("high", "High", "red"),
    ],
}


def list_config_values(db: Session, config_type: str) -> List[ConfigValue]:
    return (
        db.query(ConfigValue)
        .filter(ConfigValue.type == config_type)
        .order_by(ConfigValue.sort_order, ConfigValue.value)
        .all()
    )


def allowed_values(db: Session, config_type: str) -> List[str]:
    return [v.value for v in list_config_values(db, config_type)]


def create_config_value(
    db: Session,
    config_type: str,
    value: str,
    label: str,
    sort_order: int = 0,
    color: Optional[str] = None,
) -> ConfigValue:
    if config_type not in CONFIG_TYPES:
        raise ConfigValueError(f"Unknown config type: {config_type}")

    config_value = ConfigValue(type=config_type, value=value, label=label, sort_order=sort_order, color=color)
    db.add(config_value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConfigValueError(f"{config_type} already has value {value}")
    db.refresh(config_value)
    return config_value


def seed_default_config_values(db: Session) -> int:
    """
    Insert the default stages and priorities for any type that has none yet.

    Returns the number of values created.
    """
    created = 0
    for config_type, values in DEFAULT_VALUES.items():
        if db.query(ConfigValue).filter(ConfigValue.type == config_type).first():
            continue
        for sort_order, (value, label, color) in enumerate(values):
            db.add(ConfigValue(type=config_type, value=value, label=label, sort_order=sort_order, color=color))
            created += 1
    db.commit()

    if created:
        logger.info("Seeded {} default config value(s)", created)
    return created
