"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


_DEFAULT_JWT_SECRET = "dev-insecure-key-change-me"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Uses Pydantic for configuration validation, preventing
    common security issues like wildcard CORS.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Public base URL of the web client, used to build invitation links.
    app_base_url: str = Field(
        default="http://localhost:5173",
        description="Base URL of the web client (for invitation links)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./docvault.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(
        default=5,
        description="Number of persistent database connections"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed during traffic bursts"
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a connection from the pool before raising"
    )
    db_pool_recycle: int = Field(
        default=1800,
        description="Seconds before a connection is recycled (prevents stale connections)"
    )
    # Server-side statement timeout (PostgreSQL only). A query exceeding it
    # surfaces as a retryable COMMUNICATION_FAILURE, never as a denial.
    db_statement_timeout_ms: int = Field(
        default=10000,
        description="PostgreSQL statement_timeout in milliseconds (0 = disabled)"
    )

    # Authentication
    jwt_secret_key: str = Field(
        default=_DEFAULT_JWT_SECRET,
        description="JWT signing secret (override in production)"
    )
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_hours: int = Field(
        default=24,
        description="Lifetime of login tokens in hours"
    )

    # First super_admin, seeded on startup when the user table is empty.
    bootstrap_admin_email: str = Field(default="")
    bootstrap_admin_password: str = Field(default="")
    bootstrap_admin_name: str = Field(default="Administrator")

    # Invitations
    invitation_ttl_days: int = Field(
        default=7,
        description="Days before an unaccepted invitation expires"
    )

    # Outbound e-mail (invitation links). Empty host = e-mail disabled,
    # the invite link is returned to the inviting admin instead.
    smtp_host: str = Field(default="")
    smtp_port: int = Field(default=587)
    smtp_user: str = Field(default="")
    smtp_password: str = Field(default="")
    smtp_sender: str = Field(default="")
    smtp_sender_name: str = Field(default="DocVault")

    # Ingestion workflow webhooks. The workflow owns parsing, chunking and
    # answering; this service only relays authenticated requests to it.
    ingest_upload_webhook_url: str = Field(default="")
    ingest_delete_webhook_url: str = Field(default="")
    chat_webhook_url: str = Field(default="")
    webhook_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for calls to the ingestion workflow"
    )
    # HMAC secret the workflow uses to sign status callbacks.
    ingest_callback_secret: str = Field(
        default="",
        description="HMAC secret for ingestion status callbacks"
    )

    # Uploads
    storage_dir: str = Field(default="./storage")
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="Maximum accepted upload size"
    )

    # Chat relay limits
    chat_max_message_length: int = Field(default=4000)
    chat_max_history_messages: int = Field(default=50)

    # Audit Log Retention
    audit_retention_days: int = Field(
        default=365,
        description="Days to keep audit log entries (0 = keep forever)"
    )

    # Rate Limiting
    rate_limit_per_minute: int = Field(
        default=120,
        description="Maximum requests per client per minute"
    )
    auth_rate_limit_per_minute: int = Field(
        default=20,
        description="Maximum login / invitation-token requests per client per minute"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS origins as a list.

        Parses comma-separated string and validates no wildcards.
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        # SECURITY: Prevent wildcard CORS
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_sender)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('invitation_ttl_days')
    @classmethod
    def validate_invitation_ttl(cls, v: int) -> int:
        if v < 1:
            raise ValueError("INVITATION_TTL_DAYS must be at least 1")
        return v

    def insecure_settings(self) -> list[str]:
        """List human-readable problems that make this config unfit for production."""
        errors: list[str] = []

        if self.jwt_secret_key == _DEFAULT_JWT_SECRET:
            errors.append(
                "JWT_SECRET_KEY is using the default insecure value. "
                "Generate a secure key: openssl rand -hex 32"
            )

        if not self.ingest_callback_secret:
            errors.append(
                "INGEST_CALLBACK_SECRET is empty. "
                "Ingestion status callbacks would be accepted unsigned."
            )

        origins = self.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            errors.append(
                f"CORS allows localhost origins: {localhost_origins}. "
                "Remove localhost origins for production."
            )
        return errors

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if security-critical settings use insecure defaults.
        In development, main.py logs the same problems as warnings.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        errors = self.insecure_settings()
        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is insecure:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        # Allow reading from environment variables with different case
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
