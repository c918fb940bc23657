from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    # Directory for rotated log files; console only when unset
    log_dir: Optional[str] = None

    database_url: str = "sqlite:///./data/notscared.db"

    # Cookie security settings
    # secure=True enforces HTTPS only - must be True in production
    cookie_secure: bool = False

    # Seed default project stages and priorities on startup
    seed_config_values: bool = True

    class Config:
        env_prefix = "NOTSCARED_"
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
