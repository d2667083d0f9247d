"""Configuration models for the recording library sync service."""

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Configuration for the authoritative entity store."""

    url: str = Field(default=..., description="SQLAlchemy database URL")
    isolation_level: str | None = Field(
        default=None,
        description=(
            "Transaction isolation level for sync reads. If None, uses REPEATABLE READ "
            "on PostgreSQL and SERIALIZABLE on SQLite."
        ),
    )
    echo: bool = Field(default=False, description="Log emitted SQL statements")


class SyncConfig(BaseModel):
    """Configuration for change feed pagination."""

    default_limit: int = Field(
        default=500, ge=1, le=1000, description="Page size used when the caller omits limit"
    )
    max_limit: int = Field(
        default=1000, ge=1, le=1000, description="Largest page size a caller may request"
    )

    @model_validator(mode="after")
    def check_default_within_max(self) -> "SyncConfig":
        """Ensure the default page size is itself a valid request."""
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit must not exceed max_limit")
        return self


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the APP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    database: DatabaseConfig
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
