"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- No credentials in configuration: the session token lives in TokenStore only
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()

DEFAULT_DATA_DIR = Path.home() / ".additiya"


class APIConfig(BaseModel):
    """REST backend connection settings."""

    base_url: str = Field(default="http://localhost:3000", description="Backend base URL")
    timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Per-operation read/write timeout for HTTP calls"
    )
    connect_timeout_seconds: float = Field(
        default=5.0, gt=0.0, description="Timeout for establishing a connection"
    )
    deadline_seconds: float = Field(
        default=15.0, gt=0.0, description="Overall bound on a single request, end to end"
    )
    logout_path: str | None = Field(
        default=None, description="Optional endpoint notified on logout (best effort)"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("logout_path")
    @classmethod
    def validate_logout_path(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip()
        return v if v.startswith("/") else f"/{v}"

    @model_validator(mode="after")
    def deadline_covers_timeout(self) -> "APIConfig":
        if self.deadline_seconds < self.timeout_seconds:
            raise ValueError("deadline_seconds must be >= timeout_seconds")
        return self


class StorageConfig(BaseModel):
    """Local persistence settings for the session credential."""

    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Per-user data directory")
    token_key: str = Field(
        default="user_auth_token", min_length=1, description="Storage key for the credential"
    )
    token_file_name: str = Field(default="auth.json", min_length=1)

    @property
    def token_file_path(self) -> Path:
        return self.data_dir / self.token_file_name


class MediaConfig(BaseModel):
    """Profile photo encoding limits."""

    max_upload_bytes: int = Field(
        default=5 * 1024 * 1024, gt=0, description="Largest encoded payload we will send"
    )
    max_edge_px: int = Field(default=1024, ge=64, description="Longest edge after resizing")
    jpeg_quality: float = Field(default=0.8, gt=0.0, le=1.0, description="JPEG quality (0-1]")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    api: APIConfig = Field(default_factory=APIConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    api_config = APIConfig(
        base_url=os.getenv("API_BASE_URL", "http://localhost:3000"),
        timeout_seconds=float(os.getenv("API_TIMEOUT_SECONDS", "10.0")),
        connect_timeout_seconds=float(os.getenv("API_CONNECT_TIMEOUT_SECONDS", "5.0")),
        deadline_seconds=float(os.getenv("API_DEADLINE_SECONDS", "15.0")),
        logout_path=os.getenv("API_LOGOUT_PATH"),
    )

    storage_config = StorageConfig(
        data_dir=Path(os.getenv("USER_DATA_DIR", str(DEFAULT_DATA_DIR))).expanduser(),
        token_key=os.getenv("TOKEN_STORAGE_KEY", "user_auth_token"),
    )

    media_config = MediaConfig(
        max_upload_bytes=int(os.getenv("MEDIA_MAX_UPLOAD_BYTES", str(5 * 1024 * 1024))),
        max_edge_px=int(os.getenv("MEDIA_MAX_EDGE_PX", "1024")),
        jpeg_quality=float(os.getenv("MEDIA_JPEG_QUALITY", "0.8")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        api=api_config,
        storage=storage_config,
        media=media_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
        print(f"Backend: {config.api.base_url}")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nAPI")
    print(f"Base URL: {config.api.base_url}")
    print(f"Timeout: {config.api.timeout_seconds}s (deadline {config.api.deadline_seconds}s)")
    print(f"Logout Notification: {config.api.logout_path or 'disabled'}")

    print("\nSTORAGE")
    print(f"Token File: {config.storage.token_file_path}")
    print(f"Token Key: {config.storage.token_key}")

    print("\nMEDIA")
    print(f"Max Upload: {config.media.max_upload_bytes} bytes")
    print(f"Max Edge: {config.media.max_edge_px}px @ quality {config.media.jpeg_quality:.0%}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
