"""Runtime configuration - environment-driven settings.

Reads environment variables and applies defaults for production runtime.
"""

import json
import os
from pathlib import Path

from .base import (
    DEFAULT_DB_URI,
    DEFAULT_MIGRATION_LOG_DIR,
    DEFAULT_JWT_SECRET_KEY,
    DEFAULT_JWT_ACCESS_TOKEN_EXPIRES_MINUTES,
    DEFAULT_AUTO_CREATE_DB,
    DEFAULT_CORS_ALLOWED_ORIGINS,
    DEFAULT_CORS_ALLOWED_ORIGINS_PROD,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_PROVIDER_TYPE,
)
from .schema import ProviderSeedConfig, RuntimeConfig


def _env_flag(name, default=False):
    """Read a boolean environment variable."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name, default):
    """Read an integer environment variable."""
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _resolve_db_uri(db_env: str | None, default_uri: str) -> str:
    """Resolve DB URI from env value or fallback to default."""
    if not db_env:
        return default_uri
    db_env = db_env.strip()
    if "://" in db_env:
        if db_env.startswith("postgres://"):
            return db_env.replace("postgres://", "postgresql+psycopg://", 1)
        if db_env.startswith("postgresql://"):
            return db_env.replace("postgresql://", "postgresql+psycopg://", 1)
        return db_env
    return _sqlite_uri(Path(db_env))


def _resolve_jwt_secret() -> str:
    return (
        os.environ.get("JWT_SECRET")
        or os.environ.get("JWT_SECRET_KEY")
        or DEFAULT_JWT_SECRET_KEY
    )


def get_runtime_config(flask_config_name="default") -> RuntimeConfig:
    """
    Build runtime configuration from environment variables.

    Args:
        flask_config_name: Flask config profile name (default/development/production)

    Returns:
        RuntimeConfig instance
    """
    db_env = os.environ.get("DATABASE_URL") or os.environ.get("DB_PATH")
    db_uri = _resolve_db_uri(db_env, DEFAULT_DB_URI)

    if flask_config_name == "production":
        default_cors_origins = DEFAULT_CORS_ALLOWED_ORIGINS_PROD
    else:
        default_cors_origins = DEFAULT_CORS_ALLOWED_ORIGINS

    return RuntimeConfig(
        db_uri=db_uri,
        db_read_only=_env_flag("DB_READ_ONLY", default=False),
        auto_create_db=_env_flag("AUTO_CREATE_DB", default=DEFAULT_AUTO_CREATE_DB),
        jwt_secret_key=_resolve_jwt_secret(),
        jwt_cookie_secure=_env_flag(
            "JWT_COOKIE_SECURE", default=(flask_config_name == "production")
        ),
        jwt_access_token_expires_minutes=_env_int(
            "JWT_ACCESS_TOKEN_EXPIRES_MINUTES",
            default=DEFAULT_JWT_ACCESS_TOKEN_EXPIRES_MINUTES,
        ),
        migration_log_dir=Path(
            os.environ.get("MIGRATION_LOG_DIR", str(DEFAULT_MIGRATION_LOG_DIR))
        ),
        cors_allowed_origins=os.environ.get(
            "CORS_ALLOWED_ORIGINS", default_cors_origins
        ),
    )


def _parse_headers(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise ValueError("PROVIDER_HEADERS must be valid JSON") from exc
    if not isinstance(parsed, dict):
        raise ValueError("PROVIDER_HEADERS must be a JSON object")
    return parsed


def get_provider_seed_config() -> ProviderSeedConfig:
    """Read the provider that new users receive on registration."""
    provider_type = (os.environ.get("PROVIDER") or DEFAULT_PROVIDER_TYPE).lower()
    api_key = (
        os.environ.get("PROVIDER_API_KEY") or os.environ.get("OPENAI_API_KEY") or None
    )
    base_url = os.environ.get("PROVIDER_BASE_URL") or os.environ.get(
        "OPENAI_BASE_URL"
    )
    if not base_url and api_key and provider_type == "openai":
        base_url = DEFAULT_OPENAI_BASE_URL
    return ProviderSeedConfig(
        provider_type=provider_type,
        name=os.environ.get("PROVIDER_NAME") or None,
        api_key=api_key,
        base_url=base_url,
        headers=_parse_headers(os.environ.get("PROVIDER_HEADERS")),
        model_filter=os.environ.get("MODEL_FILTER") or None,
    )


def _sqlite_uri(path: Path) -> str:
    """Convert a Path to SQLite URI."""
    return f"sqlite:///{path.resolve().as_posix()}"


__all__ = [
    "get_runtime_config",
    "get_provider_seed_config",
    "_env_flag",
    "_env_int",
    "_resolve_db_uri",
]
