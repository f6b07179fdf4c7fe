"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "GoalPath Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://goalpath@localhost:5432/goalpath"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "goalpath"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    oracle_timeout_seconds: float = 60.0
    plan_review_enabled: bool = True
    min_goal_horizon_years: int = 5


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
