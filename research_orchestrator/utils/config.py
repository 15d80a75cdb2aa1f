from pathlib import Path
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv


dotenv_path = Path(__file__).resolve().parents[2] / '.env'
load_dotenv(dotenv_path)


class Settings(BaseSettings):
    """Global configurations."""

    model_config = SettingsConfigDict(extra='ignore', case_sensitive=True)

    ENV_STATE: str = Field('dev')

    # Durable store
    DATABASE_URL: str = Field('sqlite:///./research_orchestrator.db')
    SQLALCHEMY_ECHO: bool = Field(False)

    # Logging
    LOG_LEVEL: str = Field('INFO')
    LOG_FORMAT: str = Field('dev', description="'dev' for coloured text, 'json' for structured output")
    LOG_DIR: str = Field('logs')
    LOG_FILE_ENABLED: bool = Field(True)
    LOG_CONSOLE: bool = Field(True)
    LOG_RETENTION_DAYS: int = Field(7)

    # Worker runtime
    DEPENDENCY_POLL_INTERVAL_SEC: float = Field(5.0, gt=0)
    DEPENDENCY_TIMEOUT_SEC: float = Field(300.0, gt=0)
    WORKER_TIMEOUT_MS: int = Field(30000)
    WORKER_MAX_RETRIES: int = Field(3)
    DEFAULT_WORKER_TYPES: List[str] = Field(default_factory=lambda: ['echo'])

    # Message bus / event stream
    MESSAGE_DRAIN_INTERVAL_SEC: float = Field(1.0, gt=0)
    HEARTBEAT_INTERVAL_SEC: float = Field(15.0, gt=0)

    @property
    def is_production(self) -> bool:
        return self.ENV_STATE.lower() in ('prod', 'production')


@lru_cache()
def get_settings() -> Settings:
    return Settings()

