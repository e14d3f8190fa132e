"""Application configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="FlowVault", description="Application name")
    environment: str = Field(default="development", description="Environment")
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Always render logs as JSON")

    # Artifact storage
    artifact_backend: str = Field(
        default="memory", description="Artifact backend: memory, filesystem or s3"
    )
    artifact_path: str = Field(
        default="./data/artifacts", description="Root directory for filesystem artifacts"
    )
    s3_bucket: Optional[str] = Field(default=None, description="S3 bucket name")
    s3_region: Optional[str] = Field(default=None, description="S3 region")
    s3_access_key_id: Optional[str] = Field(default=None, description="S3 access key")
    s3_secret_access_key: Optional[str] = Field(
        default=None, description="S3 secret key"
    )
    s3_endpoint_url: Optional[str] = Field(default=None, description="S3 endpoint URL")
    s3_prefix: str = Field(default="artifacts", description="Key prefix inside the bucket")

    # Lineage storage
    lineage_backend: str = Field(
        default="memory", description="Lineage backend: memory or sql"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/flowvault.db",
        description="Async SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Versioning
    user_task_implementation: str = Field(
        default="https://html.spec.whatwg.org/",
        description="Implementation marker of user tasks backed by an HTML file",
    )
    rollback_reclaim_artifacts: bool = Field(
        default=True,
        description="Delete the replaced draft's task files after a rollback",
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() in ("development", "dev")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment.lower() in ("testing", "test")


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    return Settings()


# Global settings instance
settings = get_settings()
