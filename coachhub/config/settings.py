"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (or a `.env` file) and
validated at startup, so a bad value fails fast instead of mid-request.

Mock mode runs the whole service against the in-memory store, optionally
seeded with templates from a JSON file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "CoachHub Scheduling API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. A list allows key rotation without downtime."
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
    snowflake_private_key_base64: Optional[str] = Field(
        default=None,
        description="Base64-encoded PEM private key (for deployment, alternative to file path)"
    )
    snowflake_database: str = Field(
        default="COACHHUB",
        description="Snowflake database name"
    )
    snowflake_schema: str = Field(
        default="SCHEDULING",
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
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Use the in-memory store instead of Snowflake. Enables local dev without a database."
    )
    template_seed_path: Optional[str] = Field(
        default=None,
        description="JSON file of session templates loaded into the in-memory store in mock mode"
    )

    # Generation Behavior
    recurrence_max_scan_steps: int = Field(
        default=365,
        ge=1,
        description="Upper bound on recurrence scan iterations. Series cut short are flagged as truncated."
    )
    generation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Time budget for one generate request before it is cancelled with a 504."
    )
    bulk_max_concurrency: int = Field(
        default=4,
        ge=1,
        description="How many clients a bulk generation processes at once."
    )
    tracking_write_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts to persist a generation record before flagging it as a tracking failure."
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
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode.

        Returns list of missing required fields. Kept separate from Pydantic
        validation because requirements depend on whether we're in mock mode.
        """
        missing = []

        if not self.api_keys_list:
            missing.append("API_KEYS")

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            has_key = self.snowflake_private_key_path or self.snowflake_private_key_base64
            if not self.snowflake_password and not has_key:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() or override the dependency.
    """
    return Settings()
