"""Base defaults shared by every config profile."""

from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = BASE_DIR / "data"

DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"
DEFAULT_JWT_SECRET_KEY = "development-secret-key-change-in-production"

DEFAULT_DB_URI = f"sqlite:///{(DATA_DIR / 'chat.db').as_posix()}"
DEFAULT_MIGRATION_LOG_DIR = BASE_DIR / "logs"

DEFAULT_JWT_ACCESS_TOKEN_EXPIRES_MINUTES = 60
DEFAULT_AUTO_CREATE_DB = True

DEFAULT_CORS_ALLOWED_ORIGINS = "http://localhost:3000"
DEFAULT_CORS_ALLOWED_ORIGINS_PROD = ""

DEFAULT_PROVIDER_TYPE = "openai"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
