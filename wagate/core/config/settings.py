"""
Settings for the wagate session gateway.

Simple, reliable environment variable configuration for the HTTP surface,
session lifecycle, webhook delivery and rate limiting.
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Load .env file for local development - look in current working directory
load_dotenv(".env")


def _get_version_from_pyproject() -> str:
    """
    Read version from pyproject.toml file.

    Returns:
        Version string from pyproject.toml, or fallback version
    """
    current_path = Path(__file__)
    for parent in [current_path.parent, *current_path.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            try:
                with open(pyproject_path, "rb") as f:
                    pyproject_data = tomllib.load(f)
                    version = pyproject_data.get("project", {}).get("version")
                    if version:
                        return version
            except (OSError, tomllib.TOMLDecodeError):
                continue

    return "0.1.0"


def _csv(value: str | None) -> list[str]:
    """Split a comma separated env value into trimmed, non-empty items."""
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings with environment-based configuration."""

    def __init__(self):
        # ================================================================
        # Version & General Configuration
        # ================================================================
        self.version: str = _get_version_from_pyproject()
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "4000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV")

        # ================================================================
        # API Keys & CORS
        # ================================================================
        self.admin_api_key: str = os.getenv(
            "ADMIN_API_KEY", "changeme-admin-key"
        ).strip()
        self.user_api_keys: list[str] = _csv(os.getenv("USER_API_KEYS"))
        self.allowed_origins: list[str] = _csv(
            os.getenv("ALLOWED_ORIGINS", "http://localhost:4000")
        )

        # ================================================================
        # Storage
        # ================================================================
        self.data_dir: str = os.getenv("DATA_DIR", "./data")
        self.credentials_dir: str = os.getenv("CREDENTIALS_DIR", "./credentials")

        # ================================================================
        # Protocol adapter & session lifecycle
        # ================================================================
        # Import string of the protocol engine factory, "package.module:attr"
        self.adapter_factory: str | None = os.getenv("ADAPTER_FACTORY")
        self.reconnect_base_ms: int = int(os.getenv("RECONNECT_BASE_MS", "1000"))
        self.reconnect_max_ms: int = int(os.getenv("RECONNECT_MAX_MS", "30000"))
        self.relaunch_on_logout: bool = _flag("RELAUNCH_ON_LOGOUT", "true")
        self.qr_ttl_seconds: int = int(os.getenv("QR_TTL_SECONDS", "60"))

        # ================================================================
        # Webhook delivery
        # ================================================================
        self.webhook_default_url: str = os.getenv("WEBHOOK_DEFAULT_URL", "")
        self.webhook_default_secret: str = os.getenv(
            "WEBHOOK_DEFAULT_SECRET", "supersecret"
        )
        self.webhook_timeout: float = float(os.getenv("WEBHOOK_TIMEOUT", "10"))
        self.webhook_retries: int = int(os.getenv("WEBHOOK_RETRIES", "3"))
        self.webhook_backoff_ms: int = int(os.getenv("WEBHOOK_BACKOFF_MS", "800"))
        self.webhook_jitter_ms: int = int(os.getenv("WEBHOOK_JITTER_MS", "300"))
        self.webhook_max_backoff_ms: int = int(
            os.getenv("WEBHOOK_MAX_BACKOFF_MS", "10000")
        )
        self.webhook_action_delay_ms: int = int(
            os.getenv("WEBHOOK_ACTION_DELAY_MS", "1200")
        )
        self.media_fetch_timeout: float = float(os.getenv("MEDIA_FETCH_TIMEOUT", "20"))

        # ================================================================
        # Rate limiting & anti-spam
        # ================================================================
        self.rate_limit_window_ms: int = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
        self.rate_limit_max: int = int(os.getenv("RATE_LIMIT_MAX", "120"))
        self.spam_cooldown_ms: int = int(os.getenv("SPAM_COOLDOWN_MS", "3000"))
        self.quota_window_ms: int = int(os.getenv("QUOTA_WINDOW_MS", "60000"))
        self.quota_max: int = int(os.getenv("QUOTA_MAX", "500"))

        # ================================================================
        # Auto-reply
        # ================================================================
        self.autoreply_enabled: bool = _flag("AUTOREPLY_ENABLED", "false")
        self.autoreply_ping_pong: bool = _flag("AUTOREPLY_PING_PONG", "true")

        self._validate_settings()

    def _validate_settings(self):
        """Validate settings values."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        self.log_level = self.log_level.upper()

        valid_environments = ["DEV", "PROD"]
        if self.environment.upper() not in valid_environments:
            self.environment = "DEV"  # Default fallback
        self.environment = self.environment.upper()

        if not self.admin_api_key:
            raise ValueError("ADMIN_API_KEY must not be empty")
        if self.reconnect_base_ms <= 0 or self.reconnect_max_ms < self.reconnect_base_ms:
            raise ValueError(
                "RECONNECT_BASE_MS must be positive and not exceed RECONNECT_MAX_MS"
            )
        if self.webhook_retries < 0:
            raise ValueError("WEBHOOK_RETRIES must be >= 0")

    @property
    def registry_path(self) -> Path:
        """Location of the persisted session registry document."""
        return Path(self.data_dir) / "sessions.json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "DEV"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "PROD"


# Global settings instance
settings = Settings()
