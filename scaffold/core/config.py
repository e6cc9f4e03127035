"""
Student Service Scaffold Configuration

Configuration management with environment variable support.
Loaded once at startup and shared read-only by every component.
"""

from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

ALLOWED_ENVIRONMENTS: List[str] = ["local", "development", "staging", "production", "test"]
ALLOWED_SSL_MODES: List[str] = [
    "disable",
    "allow",
    "prefer",
    "require",
    "verify-ca",
    "verify-full",
]


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # Environment settings
    ENVIRONMENT: str = Field(default="local", description="Deployment environment")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # HTTP server configuration
    SERVER_HOST: str = Field(default="0.0.0.0", description="HTTP listener host")
    SERVER_PORT: int = Field(default=8080, ge=0, le=65535, description="HTTP port")
    SERVER_READ_TIMEOUT: float = Field(
        default=10.0, gt=0, description="Request body read timeout in seconds"
    )
    SERVER_WRITE_TIMEOUT: float = Field(
        default=10.0, gt=0, description="Response write timeout in seconds"
    )
    SERVER_IDLE_TIMEOUT: int = Field(
        default=60, ge=1, description="Keep-alive idle timeout in seconds"
    )
    SHUTDOWN_GRACE_PERIOD: float = Field(
        default=1.0, gt=0, description="Graceful shutdown window in seconds"
    )

    # Database configuration
    DATABASE_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DATABASE_PORT: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    DATABASE_USER: str = Field(default="postgres", description="PostgreSQL user")
    DATABASE_PASSWORD: str = Field(default="postgres", description="PostgreSQL password")
    DATABASE_NAME: str = Field(default="scaffold", description="PostgreSQL database")
    DATABASE_SSL_MODE: str = Field(default="disable", description="PostgreSQL SSL mode")
    DATABASE_POOL_SIZE: int = Field(
        default=10, ge=1, le=100, description="Database connection pool size"
    )
    DATABASE_MAX_OVERFLOW: int = Field(
        default=20, ge=0, le=100, description="Maximum overflow connections"
    )
    DATABASE_CONNECT_TIMEOUT: float = Field(
        default=5.0, gt=0, description="Database liveness probe timeout in seconds"
    )

    # Redis configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    REDIS_PING_TIMEOUT: float = Field(
        default=5.0, gt=0, description="Redis liveness probe timeout in seconds"
    )

    # OpenTelemetry configuration
    OTEL_SERVICE_NAME: str = Field(
        default="student-service", description="OpenTelemetry service name"
    )
    OTEL_EXPORTER_OTLP_ENDPOINT: str = Field(
        default="localhost:4318", description="OTLP/HTTP collector endpoint"
    )

    # Example service
    STUDENT_CREATE_DELAY: float = Field(
        default=2.0, ge=0, description="Simulated work per student creation in seconds"
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        if v not in ALLOWED_ENVIRONMENTS:
            raise ValueError(f"ENVIRONMENT must be one of: {ALLOWED_ENVIRONMENTS}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("DATABASE_SSL_MODE")
    @classmethod
    def validate_ssl_mode(cls, v):
        if v not in ALLOWED_SSL_MODES:
            raise ValueError(f"DATABASE_SSL_MODE must be one of: {ALLOWED_SSL_MODES}")
        return v

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v):
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must be a redis://, rediss:// or unix:// URL")
        return v

    @property
    def is_local(self) -> bool:
        """Check if running in the local development environment."""
        return self.ENVIRONMENT == "local"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
