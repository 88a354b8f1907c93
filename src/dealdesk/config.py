"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.dealdesk.wizard.schemas import SessionIdentity


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Remote operations API
    API_BASE_URL: str = "http://localhost:5000/api"
    API_TOKEN: str = ""

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # HTTP transport
    HTTP_TIMEOUT_READ: float = 10.0  # search/detail/catalog lookups
    HTTP_TIMEOUT_MUTATE: float = 30.0  # create/update deal
    HTTP_MAX_RETRIES: int = 3

    # Registry search
    SEARCH_DEBOUNCE_SECONDS: float = 0.3
    SEARCH_PAGE_SIZE: int = 50

    # Catalog lookups
    CATALOG_PAGE_LIMIT: int = 100

    DEFAULT_COUNTRY: str = "India"

    # Session identity defaults (normally supplied by the logged-in profile)
    ASSOCIATE_ID: int | None = None
    EMPLOYEE_ID: int = 9
    FRANCHISEE_ID: int = 1
    DEFAULT_REGION: str = ""

    def session_identity(self) -> SessionIdentity:
        """Build the SessionIdentity injected into the wizard and composer."""
        return SessionIdentity(
            associate_id=self.ASSOCIATE_ID,
            employee_id=self.EMPLOYEE_ID,
            franchisee_id=self.FRANCHISEE_ID,
            default_region=self.DEFAULT_REGION,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
