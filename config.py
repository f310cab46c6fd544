"""
Configuration management for the application.
"""

import logging
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    APP_NAME: str = Field(default="Family Ledger Graph", description="Title shown in the API docs")
    ENVIRONMENT: Literal["dev", "prod"] = Field(default="dev", description="Application environment")

    # Server
    HOST: str = Field(default="0.0.0.0", description="Interface to bind")
    PORT: int = Field(default=3001, description="Port to bind")

    # GraphQL
    GRAPHQL_PATH: str = Field(default="/graphql", description="GraphQL endpoint path")
    VOYAGER_PATH: str = Field(default="/voyager", description="Type-graph browser path")
    INTROSPECTION_ENABLED: bool = Field(default=True, description="Allow schema introspection queries")
    GRAPHIQL_ENABLED: bool | None = Field(default=None, description="Serve GraphiQL on GET; defaults to on in dev")

    # API configuration
    CORS_ORIGINS: str = Field(default="*", description="Comma-separated allowed origins")

    LOG_LEVEL: str = Field(default="INFO", description="Root log level")

    # Ledger
    CONTENTION_TIMEOUT_SECONDS: float = Field(
        default=2.0,
        gt=0,
        description="How long a write waits for a busy account before failing with CONTENTION",
    )
    SEED_DEMO_DATA: bool = Field(default=False, description="Load a demo family at startup")

    @field_validator("GRAPHQL_PATH", "VOYAGER_PATH")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("Paths must start with '/'")
        return v.rstrip("/") or "/"

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @model_validator(mode="after")
    def set_environment_defaults(self):
        """Set environment-specific defaults."""
        if self.GRAPHIQL_ENABLED is None:
            self.GRAPHIQL_ENABLED = self.ENVIRONMENT == "dev"
        if self.GRAPHQL_PATH == self.VOYAGER_PATH:
            raise ValueError("GRAPHQL_PATH and VOYAGER_PATH must differ")
        return self

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
