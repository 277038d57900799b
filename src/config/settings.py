"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get type validation at startup
and one documented place for everything that's tunable.

Mock modes enable local development without external services.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "TrainerHub API"
    api_version: str = "v1"

    # Identity provider
    identity_api_key: str = Field(
        default="",
        description="Web API key of the identity provider project. Required unless in mock mode."
    )
    identity_base_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        description="Identity-toolkit REST endpoint"
    )
    identity_mock_mode: bool = Field(
        default=False,
        description="Use in-memory accounts instead of the hosted identity provider."
    )

    # Snowflake Configuration
    snowflake_account: str = Field(
        default="",
        description="Snowflake account identifier"
    )
    snowflake_user: str = Field(
        default="",
        description="Snowflake service account username"
    )
    snowflake_password: str = Field(
        default="",
        description="Snowflake service account password"
    )
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="Path to RSA private key file for key-pair authentication"
    )
    snowflake_database: str = Field(
        default="TRAINERHUB",
        description="Snowflake database name"
    )
    snowflake_schema: str = Field(
        default="APP",
        description="Snowflake schema name"
    )
    snowflake_warehouse: str = Field(
        default="COMPUTE_WH",
        description="Snowflake warehouse for query execution"
    )
    snowflake_role: Optional[str] = Field(
        default=None,
        description="Snowflake role to use (optional)"
    )
    snowflake_documents_table: str = Field(
        default="DOCUMENTS",
        description="Table holding user, workout, exercise and feedback documents"
    )
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Use in-memory documents instead of Snowflake. Enables local dev without DB."
    )

    # R2/S3 Storage Configuration
    r2_account_id: str = Field(
        default="",
        description="Cloudflare account ID for R2"
    )
    r2_access_key_id: str = Field(
        default="",
        description="R2 access key ID"
    )
    r2_secret_access_key: str = Field(
        default="",
        description="R2 secret access key"
    )
    r2_bucket_name: str = Field(
        default="trainerhub-pages",
        description="R2 bucket holding page templates"
    )
    r2_endpoint_url: Optional[str] = Field(
        default=None,
        description="R2 endpoint URL. Auto-constructed from account_id if not provided."
    )
    r2_mock_mode: bool = Field(
        default=False,
        description="Serve placeholder pages from memory instead of R2."
    )
    pages_prefix: str = Field(
        default="",
        description="Key prefix prepended to page resources in the bucket"
    )

    # Session and navigation timing
    auth_ready_timeout_seconds: float = Field(
        default=10.0,
        description="How long the router waits for the first session resolution before going on without it"
    )
    reinitialize_settle_seconds: float = Field(
        default=0.1,
        description="Pause between detaching and re-attaching the identity subscription"
    )
    logout_settle_seconds: float = Field(
        default=0.2,
        description="Pause after sign-out before the session is re-initialized"
    )
    page_clear_settle_seconds: float = Field(default=0.05)
    page_mount_settle_seconds: float = Field(default=0.1)
    page_initializer_pause_seconds: float = Field(default=0.01)

    min_password_length: int = Field(
        default=6,
        description="Shortest password accepted for signup and activation"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def mock_modes(self) -> dict[str, bool]:
        """Which integrations run in memory."""
        return {
            "identity": self.identity_mock_mode,
            "snowflake": self.snowflake_mock_mode,
            "r2": self.r2_mock_mode,
        }

    @property
    def r2_endpoint(self) -> str:
        """
        Construct R2 endpoint URL from account ID.

        R2 endpoints follow the pattern: https://{account_id}.r2.cloudflarestorage.com
        """
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields. Kept apart from Pydantic
        validation because requirements depend on the mock flags.
        """
        missing = []

        if not self.identity_mock_mode and not self.identity_api_key:
            missing.append("IDENTITY_API_KEY")

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            # Need either password or private key
            if not self.snowflake_password and not self.snowflake_private_key_path:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        if not self.r2_mock_mode:
            if not self.r2_account_id and not self.r2_endpoint_url:
                missing.append("R2_ACCOUNT_ID")
            if not self.r2_access_key_id:
                missing.append("R2_ACCESS_KEY_ID")
            if not self.r2_secret_access_key:
                missing.append("R2_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. Tests can call
    get_settings.cache_clear() to reset.
    """
    return Settings()
