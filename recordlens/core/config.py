"""
Configuration management for RecordLens.

Provides centralized, validated configuration from environment variables
with proper type checking and defaults.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from dateutil import tz
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_KEY_LENGTHS = (16, 24, 32)


def _parse_bool(v) -> bool:
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes", "y")
    return bool(v)


class CryptoConfig(BaseSettings):
    """Shared-secret configuration for envelope decoding."""

    encryption_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ENCRYPTION_KEY", "NEXT_PUBLIC_ENCRYPTION_KEY"),
    )

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @property
    def key_length_ok(self) -> bool:
        """True when the secret is a valid AES key length once UTF-8 encoded."""
        if not self.encryption_key:
            return False
        return len(self.encryption_key.encode("utf-8")) in VALID_KEY_LENGTHS


class ApiConfig(BaseSettings):
    """Backend REST API configuration."""

    base_url: str = Field(default="http://localhost:5000", alias="API_BASE_URL")
    token: Optional[str] = Field(default=None, alias="API_TOKEN")
    timeout: float = Field(default=30.0, alias="API_TIMEOUT")
    health_path: str = Field(default="/api/health", alias="API_HEALTH_PATH")

    # Transport errors and timeouts only; HTTP status errors are never retried
    retry_attempts: int = Field(default=3, ge=1, alias="API_RETRY_ATTEMPTS")
    retry_backoff_max: float = Field(default=10.0, ge=0, alias="API_RETRY_BACKOFF_MAX")

    breaker_threshold: int = Field(default=5, ge=1, alias="API_BREAKER_THRESHOLD")
    breaker_recovery: float = Field(default=60.0, ge=0, alias="API_BREAKER_RECOVERY_SECONDS")

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


class DisplayConfig(BaseSettings):
    """How decoded values and audit rows are rendered."""

    timezone: str = Field(default="UTC", alias="DISPLAY_TIMEZONE")
    timestamp_format: str = Field(default="%Y-%m-%d %H:%M:%S", alias="TIMESTAMP_FORMAT")
    preview_max_fields: int = Field(default=3, alias="PREVIEW_MAX_FIELDS")
    changed_fields_limit: int = Field(default=5, alias="AUDIT_CHANGED_FIELDS_LIMIT")
    typed_diff: bool = Field(default=False, alias="AUDIT_TYPED_DIFF")

    # Comma-separated record fields that may hold their own envelope
    encrypted_fields: str = Field(default="first_name,last_name,email", alias="ENCRYPTED_FIELDS")

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        if v.lower() == "local":
            return "local"
        if tz.gettz(v) is None:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("typed_diff", mode="before")
    @classmethod
    def parse_typed_diff(cls, v):
        return _parse_bool(v)

    @property
    def tzinfo(self):
        """Resolved tzinfo for localized timestamps."""
        if self.timezone == "local":
            return tz.tzlocal()
        return tz.gettz(self.timezone)

    @property
    def encrypted_field_list(self) -> List[str]:
        return [f.strip() for f in self.encrypted_fields.split(",") if f.strip()]


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Component configurations
    crypto: CryptoConfig = Field(default_factory=CryptoConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_bool(v)

    def model_post_init(self, __context) -> None:
        # Initialize sub-configurations from the environment
        self.crypto = CryptoConfig()
        self.api = ApiConfig()
        self.display = DisplayConfig()

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global settings
    settings = None


def validate_required_settings(for_workflow: str = "decode") -> List[str]:
    """
    Validate that required settings are present for specific workflows.

    Args:
        for_workflow: Workflow name ("decode", "fetch", or "minimal")

    Returns:
        List of missing or invalid settings
    """
    missing = []
    try:
        config = get_settings()

        if for_workflow in ("decode", "fetch"):
            if not config.crypto.encryption_key:
                missing.append("ENCRYPTION_KEY")
            elif not config.crypto.key_length_ok:
                missing.append("ENCRYPTION_KEY (must be 16, 24 or 32 bytes)")

        if for_workflow == "fetch":
            if not config.api.base_url:
                missing.append("API_BASE_URL")
            if not config.api.token:
                missing.append("API_TOKEN")

    except Exception as e:
        missing.append(f"Configuration error: {e}")

    return missing


def configuration_status() -> Dict[str, str]:
    """Return a per-component status map for the doctor command."""
    status = {}
    try:
        config = get_settings()
        if not config.crypto.encryption_key:
            status["encryption_key"] = "missing"
        elif not config.crypto.key_length_ok:
            status["encryption_key"] = "invalid_length"
        else:
            status["encryption_key"] = "configured"

        status["api_token"] = "configured" if config.api.token else "missing"
        status["display_timezone"] = config.display.timezone
        status["overall"] = (
            "ready"
            if status["encryption_key"] == "configured" and status["api_token"] == "configured"
            else "missing_requirements"
        )
    except Exception as e:
        return {"overall": "configuration_error", "error": str(e)}
    return status


def print_configuration_summary():
    """Print a summary of the current configuration for debugging."""
    try:
        config = get_settings()
        print("=== RecordLens Configuration Summary ===")
        print(f"Environment: {config.environment}")
        print(f"Debug Mode: {config.debug}")
        print()
        print(f"API Base URL: {config.api.base_url}")
        print(f"API Token: {'set' if config.api.token else 'not set'}")
        print(f"API Timeout: {config.api.timeout}s")
        print(f"API Retries: {config.api.retry_attempts} attempts, backoff up to {config.api.retry_backoff_max}s")
        print(f"API Breaker: opens after {config.api.breaker_threshold} failures for {config.api.breaker_recovery}s")
        key_state = "not set"
        if config.crypto.encryption_key:
            key_state = "set" if config.crypto.key_length_ok else "set (invalid length)"
        print(f"Encryption Key: {key_state}")
        print()
        print("Display:")
        print(f"  Timezone: {config.display.timezone}")
        print(f"  Timestamp Format: {config.display.timestamp_format}")
        print(f"  Typed Audit Diff: {config.display.typed_diff}")
        print(f"  Encrypted Fields: {', '.join(config.display.encrypted_field_list)}")
        print("=" * 40)
    except Exception as e:
        print(f"Error loading configuration: {e}")
