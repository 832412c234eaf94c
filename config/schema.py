"""Configuration schema dataclasses.

Minimal dataclasses for runtime and provider-seeding configuration.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .base import (
    DEFAULT_JWT_SECRET_KEY,
    DEFAULT_MIGRATION_LOG_DIR,
    DEFAULT_PROVIDER_TYPE,
    DEFAULT_SECRET_KEY,
)


@dataclass
class RuntimeConfig:
    """Runtime configuration - environment-driven settings."""

    # Database
    db_uri: str
    db_read_only: bool = False
    auto_create_db: bool = True

    # JWT
    jwt_secret_key: str = DEFAULT_JWT_SECRET_KEY
    jwt_cookie_secure: bool = False
    jwt_access_token_expires_minutes: int = 60

    # Migration audit logs
    migration_log_dir: Path = field(default_factory=lambda: DEFAULT_MIGRATION_LOG_DIR)

    # CORS
    cors_allowed_origins: str = "http://localhost:3000"

    def __post_init__(self):
        """Validate after initialization."""
        if not self.db_uri:
            raise ValueError("DATABASE_URL must not be empty")
        if self.jwt_access_token_expires_minutes <= 0:
            raise ValueError("JWT_ACCESS_TOKEN_EXPIRES_MINUTES must be > 0")
        if self.migration_log_dir and not isinstance(self.migration_log_dir, Path):
            self.migration_log_dir = Path(self.migration_log_dir)


@dataclass
class ProviderSeedConfig:
    """Provider created for a freshly registered user."""

    provider_type: str = DEFAULT_PROVIDER_TYPE
    name: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    headers: dict = field(default_factory=dict)
    model_filter: Optional[str] = None

    def __post_init__(self):
        self.provider_type = (self.provider_type or DEFAULT_PROVIDER_TYPE).lower()
        if not isinstance(self.headers, dict):
            raise ValueError("PROVIDER_HEADERS must be a JSON object")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key or self.base_url)

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return "OpenAI" if self.provider_type == "openai" else self.provider_type


@dataclass
class AppConfig:
    """Top-level config container."""

    runtime: RuntimeConfig
    provider_seed: ProviderSeedConfig = field(default_factory=ProviderSeedConfig)
    secret_key: str = DEFAULT_SECRET_KEY
