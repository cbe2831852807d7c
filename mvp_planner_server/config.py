"""
Configuration management with environment variable validation.
Loads and validates all configuration from environment variables.
"""
import json
from typing import Dict, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Numbered secret settings (GEMINI_API_KEY_2 ..) read after the primary/list settings
NUMBERED_KEY_FIELDS = {
    "content-gen": [f"gemini_api_key_{i}" for i in range(2, 11)],
    "image-search": [f"unsplash_access_key_{i}" for i in range(2, 6)],
}


def _split_list(value: Optional[str]) -> List[str]:
    """Parse a JSON list or comma-separated string into a list of strings."""
    if not value:
        return []
    value = value.strip()
    if value.startswith("["):
        try:
            return [str(v).strip() for v in json.loads(value) if str(v).strip()]
        except json.JSONDecodeError:
            pass
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="mvp-planner")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file_enabled: bool = Field(default=False)
    log_file_path: str = Field(default="logs/mvp-planner.log")
    log_file_max_size: int = Field(default=10485760)  # 10MB
    log_file_backup_count: int = Field(default=5)

    # Key store
    database_url: Optional[str] = Field(default=None)
    database_echo: bool = Field(default=False)

    # Key rotation
    key_daily_quota: int = Field(default=50)
    key_max_rotations: int = Field(default=1)
    key_reset_interval_hours: float = Field(default=24.0)
    key_reset_poll_seconds: int = Field(default=1800)
    key_reset_enabled: bool = Field(default=True)

    # Provider credentials used to seed the key store
    gemini_api_key: Optional[str] = Field(default=None)
    gemini_api_keys: Optional[str] = Field(default=None)
    unsplash_access_key: Optional[str] = Field(default=None)
    unsplash_access_keys: Optional[str] = Field(default=None)
    gemini_api_key_2: Optional[str] = None
    gemini_api_key_3: Optional[str] = None
    gemini_api_key_4: Optional[str] = None
    gemini_api_key_5: Optional[str] = None
    gemini_api_key_6: Optional[str] = None
    gemini_api_key_7: Optional[str] = None
    gemini_api_key_8: Optional[str] = None
    gemini_api_key_9: Optional[str] = None
    gemini_api_key_10: Optional[str] = None
    unsplash_access_key_2: Optional[str] = None
    unsplash_access_key_3: Optional[str] = None
    unsplash_access_key_4: Optional[str] = None
    unsplash_access_key_5: Optional[str] = None

    # Used only when a provider was never seeded
    default_content_gen_key: Optional[str] = Field(default=None)
    default_image_search_key: Optional[str] = Field(default=None)

    # Provider endpoints
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    gemini_model: str = Field(default="gemini-1.5-flash")
    gemini_timeout: float = Field(default=60.0)
    unsplash_base_url: str = Field(default="https://api.unsplash.com")
    unsplash_timeout: float = Field(default=10.0)
    provider_connect_retries: int = Field(default=1)

    # Inbound rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_generate: str = Field(default="10/minute")
    rate_limit_storage_uri: str = Field(default="memory://")
    # Peers whose X-Forwarded-For header is honoured
    trusted_proxies: str = Field(default="")

    # Admin endpoints (X-Admin-Key header); disabled when unset
    admin_api_key: Optional[str] = Field(default=None)

    # CORS
    cors_enabled: bool = Field(default=True)
    cors_origins: str = Field(default="http://localhost:3000,http://localhost:5173")

    @field_validator("environment")
    @classmethod
    def validate_environment_name(cls, v: str) -> str:
        """Validate environment value."""
        allowed = ["development", "staging", "production", "test"]
        if v not in allowed:
            raise ValueError(f"environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        allowed = ["json", "console"]
        if v not in allowed:
            raise ValueError(f"log_format must be one of: {allowed}")
        return v

    @field_validator("key_daily_quota")
    @classmethod
    def validate_quota(cls, v: int) -> int:
        if v < 1:
            raise ValueError("key_daily_quota must be at least 1")
        return v

    @field_validator("key_max_rotations", "provider_connect_retries")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("key_reset_poll_seconds")
    @classmethod
    def validate_poll_seconds(cls, v: int) -> int:
        if v < 1:
            raise ValueError("key_reset_poll_seconds must be at least 1")
        return v

    @field_validator("key_reset_interval_hours")
    @classmethod
    def validate_reset_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("key_reset_interval_hours must be positive")
        return v

    @property
    def cors_origin_list(self) -> List[str]:
        """CORS origins parsed from JSON or comma-separated string."""
        return _split_list(self.cors_origins)

    @property
    def trusted_proxy_list(self) -> List[str]:
        """Trusted proxy addresses parsed from JSON or comma-separated string."""
        return _split_list(self.trusted_proxies)

    def configured_secrets(self) -> Dict[str, List[str]]:
        """
        Collect configured provider secrets in declaration order.

        Returns:
            Mapping of provider name to unique secrets
        """
        collected = {
            "content-gen": [self.gemini_api_key] + _split_list(self.gemini_api_keys),
            "image-search": [self.unsplash_access_key] + _split_list(self.unsplash_access_keys),
        }
        for provider, names in NUMBERED_KEY_FIELDS.items():
            collected[provider].extend(getattr(self, name) for name in names)

        result: Dict[str, List[str]] = {}
        for provider, secrets in collected.items():
            unique: List[str] = []
            for secret in secrets:
                if secret and secret.strip() and secret.strip() not in unique:
                    unique.append(secret.strip())
            result[provider] = unique
        return result

    def default_keys(self) -> Dict[str, Optional[str]]:
        """Hard-coded default key per provider (bare-environment fallback)."""
        return {
            "content-gen": self.default_content_gen_key,
            "image-search": self.default_image_search_key,
        }


def validate_environment() -> Settings:
    """
    Validate environment configuration on startup.
    Raises ValueError if variables are invalid.
    """
    try:
        settings = Settings()

        if settings.environment == "production" and settings.debug:
            raise ValueError("DEBUG must be False in production")

        if settings.database_url and not settings.database_url.startswith(("postgresql", "sqlite")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")

        return settings

    except Exception as e:
        print(f"\n❌ Environment Configuration Error:")
        print(f"   {str(e)}\n")
        print("💡 Tip: Copy .env.example to .env and fill in your values")
        raise


# Global settings instance
settings = validate_environment()
