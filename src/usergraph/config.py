"""
Configuration management for the usergraph gateway
"""

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="USERGRAPH_",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("USERGRAPH_DATABASE_URL", "DATABASE_URL", "database_url"),
    )
    database_pool_size: int = 5
    database_max_overflow: int = 0
    database_pool_timeout: float = 30.0  # seconds to wait for a free connection
    database_pool_recycle: int = 1800
    database_pool_pre_ping: bool = True
    sql_echo: bool = False

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_reload: bool = False
    cors_origins: list[str] = ["*"]
    graphiql_enabled: bool = True

    # Environment
    environment: str = "development"  # 'development', 'staging', 'production'
    debug: bool = False
    log_level: str = "INFO"

    @field_validator("database_url")
    @classmethod
    def _check_database_url(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        try:
            make_url(value)
        except ArgumentError as e:
            raise ValueError(f"malformed database URL: {e}") from e
        return value

    def require_database_url(self) -> str:
        """Return the configured store URL or fail startup."""
        if not self.database_url:
            raise ConfigurationError(
                "No database URL configured; set USERGRAPH_DATABASE_URL or DATABASE_URL"
            )
        return self.database_url


# Global settings instance
settings = Settings()
